"""Wikilink detection and two-phase cross-note resolution.

Detection is per note and independent.  Resolution needs every note routed
first: :meth:`AliasIndex.build` indexes all notes, then
:func:`resolve_wikilinks` looks each link up in that index.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Sequence

from vault_publish.assets import ASSET_EXTENSIONS, file_extension
from vault_publish.context import PipelineContext, stage_logger
from vault_publish.frontmatter import extract_frontmatter_strings
from vault_publish.note import PublishableNote, ResolvedWikilink, WikilinkKind, WikilinkRef

logger = logging.getLogger(__name__)

WIKILINK_RE = re.compile(r"\[\[([^\]]+)\]\]")

FILE_EXTENSIONS = ASSET_EXTENSIONS | {"md", "markdown"}
_NOTE_EXTENSIONS = (".md", ".markdown")


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def infer_kind(path: str) -> WikilinkKind:
    return "file" if file_extension(path) in FILE_EXTENSIONS else "note"


def _scan(text: str, origin: str, frontmatter_path: str | None = None) -> list[WikilinkRef]:
    links: list[WikilinkRef] = []
    for match in WIKILINK_RE.finditer(text):
        start = match.start()
        if start > 0 and text[start - 1] == "!":
            continue  # asset embed

        inner = match.group(1).strip()
        target_part, _, alias_part = inner.partition("|")
        target = target_part.strip()
        if not target:
            continue
        path_part, _, subpath_part = target.partition("#")
        path = path_part.strip()
        if not path:
            continue

        links.append(
            WikilinkRef(
                raw=match.group(0),
                target=target,
                path=path,
                kind=infer_kind(path),
                subpath=subpath_part.strip() or None,
                alias=alias_part.strip() or None,
                origin=origin,  # type: ignore[arg-type]
                frontmatter_path=frontmatter_path,
            )
        )
    return links


def detect_wikilinks(markdown: str, frontmatter_nested: Mapping[str, Any] | None = None) -> list[WikilinkRef]:
    """Return ``[[...]]`` links from *markdown*, then from frontmatter strings."""
    links = _scan(markdown, "content")
    for path, value in extract_frontmatter_strings(frontmatter_nested or {}):
        links.extend(_scan(value, "frontmatter", path))
    return links


def detect_note_wikilinks(note: PublishableNote, *, ctx: PipelineContext | None = None) -> PublishableNote:
    links = detect_wikilinks(note.content, note.frontmatter.nested)
    stage_logger(__name__, ctx).debug("Detected %d wikilink(s)", len(links))
    return note.evolve(wikilinks=tuple(links))


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def normalize_alias(value: str) -> str:
    return value.strip().replace("\\", "/").lstrip("/").lower()


def _strip_note_extension(path: str) -> str:
    lower = path.lower()
    for ext in _NOTE_EXTENSIONS:
        if lower.endswith(ext):
            return path[: -len(ext)]
    return path


def candidate_aliases(note: PublishableNote) -> list[str]:
    """Every name under which *note* can be linked to, most specific last."""
    candidates = [note.title]
    if note.routing is not None:
        candidates += [note.routing.slug, note.routing.full_path]
    for path in (note.relative_path, note.vault_path):
        if not path:
            continue
        posix = path.replace("\\", "/")
        bare = _strip_note_extension(posix)
        candidates += [posix, bare, posix.rsplit("/", 1)[-1], bare.rsplit("/", 1)[-1]]
    return candidates


@dataclass(frozen=True)
class AliasTarget:
    note_id: str
    href: str


@dataclass
class AliasIndex:
    entries: dict[str, AliasTarget] = field(default_factory=dict)
    #: ``(alias, kept note id, rejected note id)`` for every ignored duplicate
    conflicts: list[tuple[str, str, str]] = field(default_factory=list)

    @classmethod
    def build(cls, notes: Iterable[PublishableNote]) -> "AliasIndex":
        index = cls()
        for note in notes:
            if note.routing is None:
                raise ValueError(f"Note {note.note_id} must be routed before wikilink resolution")
            target = AliasTarget(note_id=note.note_id, href=note.routing.full_path)
            for alias in candidate_aliases(note):
                index.register(alias, target)
        return index

    def register(self, alias: str, target: AliasTarget) -> None:
        key = normalize_alias(alias)
        if not key:
            return
        existing = self.entries.get(key)
        if existing is None:
            self.entries[key] = target
        elif existing.note_id != target.note_id:
            # first registration wins
            logger.debug("Alias '%s' already points to %s, ignoring %s", key, existing.note_id, target.note_id)
            self.conflicts.append((key, existing.note_id, target.note_id))

    def lookup(self, path: str) -> AliasTarget | None:
        key = normalize_alias(path)
        return self.entries.get(key) or self.entries.get(normalize_alias(_strip_note_extension(key)))


def resolve_link(link: WikilinkRef, index: AliasIndex) -> ResolvedWikilink:
    base = ResolvedWikilink(**{f: getattr(link, f) for f in WikilinkRef.__dataclass_fields__})
    target = index.lookup(link.path)
    if target is None:
        return base
    href = f"{target.href}#{link.subpath}" if link.subpath else target.href
    return replace(base, is_resolved=True, target_note_id=target.note_id, href=href)


def resolve_wikilinks(
    notes: Sequence[PublishableNote], *, ctx: PipelineContext | None = None
) -> list[PublishableNote]:
    """Resolve the detected wikilinks of every note against all *notes*."""
    log = stage_logger(__name__, ctx)
    index = AliasIndex.build(notes)
    log.debug("Alias index built with %d entries (%d conflicts)", len(index.entries), len(index.conflicts))

    resolved_notes: list[PublishableNote] = []
    for note in notes:
        resolved = tuple(resolve_link(link, index) for link in note.wikilinks or ())
        unresolved = sum(1 for r in resolved if not r.is_resolved)
        if unresolved:
            log.debug("%d unresolved wikilink(s) in '%s'", unresolved, note.vault_path)
        resolved_notes.append(note.evolve(resolved_wikilinks=resolved))
    return resolved_notes
