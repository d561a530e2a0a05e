"""Site manifest: the persisted catalog of published pages.

The manifest lives in ``<content_root>/_manifest.json``::

    {
      "sessionId": "...",
      "createdAt": "2026-01-01T10:00:00+00:00",
      "lastUpdatedAt": "...",
      "pages": [{"id": "...", "title": "...", "slug": "...", "route": "/docs/intro",
                 "publishedAt": "...", "vaultPath": "...", "relativePath": "...",
                 "tags": [...]}]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from vault_publish.note import PublishableNote
from vault_publish.site_index import render_site_index

logger = logging.getLogger(__name__)

MANIFEST_FILE = "_manifest.json"


def parse_timestamp(value: str) -> datetime:
    """ISO 8601 timestamp; a trailing ``Z`` means UTC."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class ManifestPage:
    id: str
    title: str
    slug: str
    route: str
    published_at: datetime
    description: str | None = None
    vault_path: str | None = None
    relative_path: str | None = None
    tags: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "route": self.route,
            "publishedAt": self.published_at.isoformat(),
        }
        if self.description is not None:
            data["description"] = self.description
        if self.vault_path is not None:
            data["vaultPath"] = self.vault_path
        if self.relative_path is not None:
            data["relativePath"] = self.relative_path
        if self.tags is not None:
            data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManifestPage":
        tags = data.get("tags")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            slug=str(data.get("slug", "")),
            route=str(data.get("route", "")),
            published_at=parse_timestamp(data["publishedAt"]),
            description=data.get("description"),
            vault_path=data.get("vaultPath"),
            relative_path=data.get("relativePath"),
            tags=tuple(tags) if tags is not None else None,
        )


@dataclass(frozen=True)
class Manifest:
    session_id: str
    created_at: datetime
    last_updated_at: datetime
    pages: tuple[ManifestPage, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "lastUpdatedAt": self.last_updated_at.isoformat(),
            "pages": [p.to_dict() for p in self.pages],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        return cls(
            session_id=str(data["sessionId"]),
            created_at=parse_timestamp(data["createdAt"]),
            last_updated_at=parse_timestamp(data["lastUpdatedAt"]),
            pages=tuple(ManifestPage.from_dict(p) for p in data.get("pages") or []),
        )

    def page(self, page_id: str) -> ManifestPage | None:
        return next((p for p in self.pages if p.id == page_id), None)


def page_from_note(note: PublishableNote) -> ManifestPage:
    if note.routing is None:
        raise ValueError(f"Note {note.note_id} has no routing")
    return ManifestPage(
        id=note.note_id,
        title=note.title,
        slug=note.routing.slug,
        route=note.routing.full_path,
        published_at=note.published_at,
        vault_path=note.vault_path,
        relative_path=note.relative_path,
        tags=tuple(note.frontmatter.tags),
    )


def merge_manifest(
    existing: Manifest | None,
    session_id: str,
    pages: Iterable[ManifestPage],
    now: datetime,
) -> Manifest:
    """Merge *pages* into *existing* by id; a page never replaces a newer one.

    A missing manifest, or one written by another session, is replaced by a
    fresh manifest rather than merged.
    """
    if existing is None or existing.session_id != session_id:
        logger.info("Starting new manifest for session %s", session_id)
        base = Manifest(session_id=session_id, created_at=now, last_updated_at=now)
    else:
        base = replace(existing, last_updated_at=now)

    by_id: dict[str, ManifestPage] = {p.id: p for p in base.pages}
    for page in pages:
        current = by_id.get(page.id)
        if current is not None and page.published_at < current.published_at:
            logger.debug("Keeping newer stored page %s (%s)", page.id, current.published_at.isoformat())
            continue
        by_id[page.id] = page

    ordered = sorted(by_id.values(), key=lambda p: p.published_at, reverse=True)
    return replace(base, pages=tuple(ordered))


class ManifestFileStore:
    """Filesystem-backed manifest plus generated ``index.html`` pages."""

    def __init__(self, content_root: Path | str) -> None:
        self.content_root = Path(content_root)

    @property
    def manifest_path(self) -> Path:
        return self.content_root / MANIFEST_FILE

    def _read(self) -> Manifest | None:
        if not self.manifest_path.exists():
            logger.debug("No manifest at %s", self.manifest_path)
            return None
        data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        return Manifest.from_dict(data)

    def _write(self, manifest: Manifest) -> None:
        self.content_root.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Manifest saved to %s (%d pages)", self.manifest_path, len(manifest.pages))

    def _write_indexes(self, manifest: Manifest) -> None:
        for rel_path, html in render_site_index(manifest).items():
            target = self.content_root / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(html, encoding="utf-8")
            logger.debug("Index written: %s", target)

    async def load(self) -> Manifest | None:
        return self._read()

    async def save(self, manifest: Manifest) -> None:
        self._write(manifest)

    async def rebuild_index(self, manifest: Manifest) -> None:
        self._write_indexes(manifest)
