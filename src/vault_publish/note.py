"""Note value types flowing through the publication pipeline.

Every type here is a frozen dataclass: pipeline stages never mutate a note,
they return a new one built with :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Literal

from vault_publish.config import FolderConfig, Primitive, VpsConfig
from vault_publish.frontmatter import DomainFrontmatter

AssetKind = Literal["image", "audio", "video", "pdf", "other"]
AssetAlignment = Literal["left", "right", "center"]
Origin = Literal["content", "frontmatter"]
WikilinkKind = Literal["note", "file"]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class CollectedNote:
    """A raw note as handed over by the vault reader."""

    vault_path: str
    relative_path: str
    content: str
    frontmatter: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NoteRoutingInfo:
    id: str
    slug: str
    path: str
    route_base: str
    full_path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "path": self.path,
            "routeBase": self.route_base,
            "fullPath": self.full_path,
        }


@dataclass(frozen=True)
class IgnoredByRule:
    property: str
    reason: Literal["ignoreIf", "ignoreValues"]
    matched_value: Primitive
    rule_index: int


@dataclass(frozen=True)
class NoteEligibility:
    is_publishable: bool
    ignored_by_rule: IgnoredByRule | None = None


@dataclass(frozen=True)
class AssetDisplay:
    alignment: AssetAlignment | None = None
    width: int | None = None
    classes: tuple[str, ...] = ()
    raw_modifiers: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "alignment": self.alignment,
                "width": self.width,
                "classes": list(self.classes),
                "rawModifiers": list(self.raw_modifiers),
            }
        )


@dataclass(frozen=True)
class AssetRef:
    raw: str
    target: str
    kind: AssetKind
    display: AssetDisplay = field(default_factory=AssetDisplay)
    origin: Origin | None = None
    frontmatter_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "raw": self.raw,
                "target": self.target,
                "kind": self.kind,
                "display": self.display.to_dict(),
                "origin": self.origin,
                "frontmatterPath": self.frontmatter_path,
            }
        )


@dataclass(frozen=True)
class ResolvedAssetFile:
    vault_path: str
    file_name: str
    relative_asset_path: str
    content: bytes
    mime_type: str | None = None


@dataclass(frozen=True)
class WikilinkRef:
    raw: str
    target: str
    path: str
    kind: WikilinkKind
    subpath: str | None = None
    alias: str | None = None
    origin: Origin | None = None
    frontmatter_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "raw": self.raw,
                "target": self.target,
                "path": self.path,
                "subpath": self.subpath,
                "alias": self.alias,
                "kind": self.kind,
                "origin": self.origin,
                "frontmatterPath": self.frontmatter_path,
            }
        )


@dataclass(frozen=True)
class ResolvedWikilink(WikilinkRef):
    is_resolved: bool = False
    target_note_id: str | None = None
    href: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["isResolved"] = self.is_resolved
        if self.target_note_id is not None:
            data["targetNoteId"] = self.target_note_id
        if self.href is not None:
            data["href"] = self.href
        return data


@dataclass(frozen=True)
class PublishableNote:
    """A note that passed eligibility, enriched stage by stage."""

    note_id: str
    title: str
    vault_path: str
    relative_path: str
    content: str
    frontmatter: DomainFrontmatter
    folder_config: FolderConfig
    vps_config: VpsConfig
    published_at: datetime
    routing: NoteRoutingInfo | None = None
    eligibility: NoteEligibility | None = None
    assets: tuple[AssetRef, ...] | None = None
    wikilinks: tuple[WikilinkRef, ...] | None = None
    resolved_wikilinks: tuple[ResolvedWikilink, ...] | None = None

    def evolve(self, **changes: Any) -> "PublishableNote":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase, ISO timestamps)."""
        return _drop_none(
            {
                "noteId": self.note_id,
                "title": self.title,
                "vaultPath": self.vault_path,
                "relativePath": self.relative_path,
                "content": self.content,
                "frontmatter": self.frontmatter.to_dict(),
                "folderConfig": self.folder_config.to_dict(),
                "vpsConfig": self.vps_config.to_dict(),
                "publishedAt": self.published_at.isoformat(),
                "routing": self.routing.to_dict() if self.routing else None,
                "assets": [a.to_dict() for a in self.assets] if self.assets is not None else None,
                "wikilinks": [w.to_dict() for w in self.wikilinks] if self.wikilinks is not None else None,
                "resolvedWikilinks": (
                    [w.to_dict() for w in self.resolved_wikilinks]
                    if self.resolved_wikilinks is not None
                    else None
                ),
            }
        )


def title_from_path(vault_path: str) -> str:
    """File name of *vault_path* without its extension."""
    name = PurePosixPath(vault_path.replace("\\", "/")).name
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name
