"""Asset embed detection (``![[file.png|center|300]]``)."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from vault_publish.context import PipelineContext, stage_logger
from vault_publish.frontmatter import extract_frontmatter_strings
from vault_publish.note import AssetAlignment, AssetDisplay, AssetKind, AssetRef, PublishableNote

EMBED_RE = re.compile(r"!\[\[([^\]]+)\]\]")

_KIND_BY_EXTENSION: dict[str, AssetKind] = {
    **{ext: "image" for ext in ("png", "jpg", "jpeg", "gif", "webp", "svg")},
    **{ext: "audio" for ext in ("mp3", "wav", "flac", "ogg")},
    **{ext: "video" for ext in ("mp4", "webm", "mkv", "mov")},
    "pdf": "pdf",
}
ASSET_EXTENSIONS = frozenset(_KIND_BY_EXTENSION)

_ALIGNMENTS: dict[str, AssetAlignment] = {
    "left": "left",
    "right": "right",
    "center": "center",
    "centre": "center",
}
_WIDTH_RE = re.compile(r"^[0-9]+$")


def file_extension(target: str) -> str:
    name = target.replace("\\", "/").rsplit("/", 1)[-1]
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


def classify_asset_kind(target: str) -> AssetKind:
    return _KIND_BY_EXTENSION.get(file_extension(target), "other")


def parse_modifiers(tokens: Iterable[str]) -> AssetDisplay:
    alignment: AssetAlignment | None = None
    width: int | None = None
    classes: list[str] = []
    raw_modifiers: list[str] = []

    for raw in tokens:
        token = raw.strip()
        if not token:
            continue
        raw_modifiers.append(token)

        if alignment is None and token.lower() in _ALIGNMENTS:
            alignment = _ALIGNMENTS[token.lower()]
            continue
        if width is None and _WIDTH_RE.match(token):
            width = int(token)
            continue
        classes.append(token)

    return AssetDisplay(
        alignment=alignment,
        width=width,
        classes=tuple(classes),
        raw_modifiers=tuple(raw_modifiers),
    )


def _scan(text: str, origin: str, frontmatter_path: str | None = None) -> list[AssetRef]:
    found: list[AssetRef] = []
    for match in EMBED_RE.finditer(text):
        segments = [s.strip() for s in match.group(1).split("|") if s.strip()]
        if not segments:
            continue
        target, *modifiers = segments
        kind = classify_asset_kind(target)
        if kind == "other" and not file_extension(target):
            # ![[Some Note]] is a transclusion, not an asset
            continue
        found.append(
            AssetRef(
                raw=match.group(0),
                target=target,
                kind=kind,
                display=parse_modifiers(modifiers),
                origin=origin,  # type: ignore[arg-type]
                frontmatter_path=frontmatter_path,
            )
        )
    return found


def detect_assets(markdown: str, frontmatter_nested: Mapping[str, Any] | None = None) -> list[AssetRef]:
    """Return embeds found in *markdown*, then those in frontmatter strings."""
    assets = _scan(markdown, "content")
    for path, value in extract_frontmatter_strings(frontmatter_nested or {}):
        assets.extend(_scan(value, "frontmatter", path))
    return assets


def detect_note_assets(note: PublishableNote, *, ctx: PipelineContext | None = None) -> PublishableNote:
    assets = detect_assets(note.content, note.frontmatter.nested)
    log = stage_logger(__name__, ctx)
    if not assets:
        log.debug("No assets detected in note '%s'", note.title)
        return note
    log.debug("Detected %d asset(s) in note '%s'", len(assets), note.title)
    return note.evolve(assets=tuple(assets))
