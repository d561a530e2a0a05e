"""Collaborator protocols.

The pipeline never reads files, renders markdown or talks to the network
itself; it goes through these interfaces so hosts can plug their own
implementations (a desktop vault, a remote site, an in-memory fake).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

from vault_publish.config import FolderConfig
from vault_publish.note import AssetRef, CollectedNote, PublishableNote, ResolvedAssetFile

if TYPE_CHECKING:
    from vault_publish.manifest import Manifest


@runtime_checkable
class VaultReader(Protocol):
    async def collect_from_folder(self, folder: FolderConfig) -> list[CollectedNote]:
        """Return every note stored under *folder*."""
        ...


@runtime_checkable
class MarkdownRenderer(Protocol):
    async def render(self, markdown: str) -> str:
        """Convert *markdown* to an HTML fragment."""
        ...


@runtime_checkable
class Uploader(Protocol):
    async def upload(self, notes: Sequence[PublishableNote]) -> bool:
        """Deliver one batch; ``False`` (or an exception) fails the whole batch."""
        ...


@runtime_checkable
class AssetFileResolver(Protocol):
    def resolve(self, note: PublishableNote, asset: AssetRef) -> ResolvedAssetFile | None: ...


@runtime_checkable
class AssetUploader(Protocol):
    async def upload(self, files: Sequence[ResolvedAssetFile]) -> bool: ...


@runtime_checkable
class ContentStore(Protocol):
    async def save(self, route: str, html: str) -> None: ...


@runtime_checkable
class ManifestStore(Protocol):
    async def load(self) -> "Manifest | None": ...

    async def save(self, manifest: "Manifest") -> None: ...

    async def rebuild_index(self, manifest: "Manifest") -> None: ...


@runtime_checkable
class Progress(Protocol):
    def start(self, total: int) -> None: ...
    def advance(self, step: int = 1) -> None: ...
    def finish(self) -> None: ...
