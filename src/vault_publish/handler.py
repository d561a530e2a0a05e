"""Site side of a publication: render uploaded notes, store assets and update the manifest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Callable, Sequence

from vault_publish.asset_publisher import AssetsPublicationResult, AssetsPublishFailed, PublishAssetsToSite
from vault_publish.context import PipelineContext
from vault_publish.manifest import merge_manifest, page_from_note
from vault_publish.note import PublishableNote, ResolvedAssetFile
from vault_publish.ports import ContentStore, ManifestStore, MarkdownRenderer
from vault_publish.rendering import ASSETS_ROUTE, build_html_page, link_markdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteError:
    note_id: str
    message: str


@dataclass
class UploadNotesResult:
    session_id: str
    published: int = 0
    errors: list[NoteError] = field(default_factory=list)


class FileSystemContentStore:
    """Writes each page to ``<content_root><route>.html``."""

    def __init__(self, content_root: Path | str) -> None:
        self.content_root = Path(content_root)

    def path_for(self, route: str) -> Path:
        relative = route.strip("/") or "index"
        return self.content_root / f"{relative}.html"

    async def save(self, route: str, html: str) -> None:
        target = self.path_for(route)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(html, encoding="utf-8")
        logger.debug("Page written: %s", target)


class FileSystemAssetStore:
    """``AssetUploader`` copying files to ``<content_root>/assets/<relative path>``."""

    def __init__(self, content_root: Path | str) -> None:
        self.assets_root = Path(content_root) / ASSETS_ROUTE.strip("/")

    def path_for(self, file: ResolvedAssetFile) -> Path:
        relative = PurePosixPath(file.relative_asset_path.replace("\\", "/").lstrip("/"))
        if ".." in relative.parts or not relative.parts:
            raise ValueError(f"Invalid asset path: {file.relative_asset_path!r}")
        return self.assets_root.joinpath(*relative.parts)

    async def upload(self, files: Sequence[ResolvedAssetFile]) -> bool:
        for file in files:
            target = self.path_for(file)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(file.content)
            logger.debug("Asset written: %s", target)
        return True


class UploadNotesHandler:
    def __init__(
        self,
        renderer: MarkdownRenderer,
        content_store: ContentStore,
        manifest_store: ManifestStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._renderer = renderer
        self._content = content_store
        self._manifests = manifest_store
        self._now = clock or (lambda: datetime.now(timezone.utc))

    async def handle(self, session_id: str, notes: Sequence[PublishableNote]) -> UploadNotesResult:
        """Publish *notes*; a failing note is reported and the rest continue."""
        ctx = PipelineContext().child(session=session_id)
        log = ctx.logger(__name__)
        result = UploadNotesResult(session_id=session_id)
        succeeded: list[PublishableNote] = []

        log.info("Publishing %d note(s)", len(notes))
        for note in notes:
            note_log = ctx.child(noteId=note.note_id).logger(__name__)
            try:
                if note.routing is None:
                    raise ValueError(f"Note {note.note_id} has no routing")
                body = await self._renderer.render(link_markdown(note))
                await self._content.save(note.routing.full_path, build_html_page(note, body))
            except Exception as exc:  # noqa: BLE001
                note_log.error("Failed to publish note: %s", exc)
                result.errors.append(NoteError(note_id=note.note_id, message=str(exc)))
                continue
            result.published += 1
            succeeded.append(note)
            note_log.debug("Published at %s", note.routing.full_path)

        if succeeded:
            await self._update_manifest(session_id, succeeded, ctx)

        if result.errors:
            log.warning("%d note(s) failed to publish", len(result.errors))
        log.info("Publishing complete: %d published, %d error(s)", result.published, len(result.errors))
        return result

    async def _update_manifest(
        self, session_id: str, notes: Sequence[PublishableNote], ctx: PipelineContext
    ) -> None:
        existing = await self._manifests.load()
        manifest = merge_manifest(existing, session_id, [page_from_note(n) for n in notes], self._now())
        await self._manifests.save(manifest)
        await self._manifests.rebuild_index(manifest)
        ctx.logger(__name__).info("Manifest and indexes updated (%d pages)", len(manifest.pages))


class LocalSiteUploader:
    """``Uploader`` that hands batches straight to an in-process handler.

    With *assets*, the files embedded by each batch are published after its
    pages; an asset publication error fails the batch.
    """

    def __init__(
        self, handler: UploadNotesHandler, session_id: str, *, assets: PublishAssetsToSite | None = None
    ) -> None:
        self.handler = handler
        self.session_id = session_id
        self.assets = assets
        self.last_result: UploadNotesResult | None = None
        self.last_assets_result: AssetsPublicationResult | None = None

    async def upload(self, notes: Sequence[PublishableNote]) -> bool:
        self.last_result = await self.handler.handle(self.session_id, notes)
        if self.assets is not None:
            self.last_assets_result = await self.assets.execute(notes)
            if isinstance(self.last_assets_result, AssetsPublishFailed):
                raise self.last_assets_result.error
        return True
