"""Deterministic route computation from folder config and relative path."""

from __future__ import annotations

import re
import unicodedata

from vault_publish.context import PipelineContext, stage_logger
from vault_publish.note import NoteRoutingInfo, PublishableNote

ROOT_SLUG = "note"

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")
_WHITESPACE_RE = re.compile(r"\s")
_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def slugify_segment(segment: str) -> str:
    """``"Été Précoce"`` -> ``"ete-precoce"``."""
    decomposed = unicodedata.normalize("NFD", segment)
    text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    text = _NON_ALNUM_RE.sub("", text)
    text = _MULTI_SPACE_RE.sub(" ", text).strip().lower()
    return _WHITESPACE_RE.sub("-", text)


def normalize_route_base(route_base: str | None) -> str:
    if not route_base or not route_base.strip():
        return ""
    r = route_base.strip()
    if not r.startswith("/"):
        r = "/" + r
    if len(r) > 1 and r.endswith("/"):
        r = r.rstrip("/") or "/"
    return r


def normalize_relative_path(path: str) -> str:
    return path.replace("\\", "/").strip("/")


def _join_route(*parts: str) -> str:
    joined = "/" + "/".join(p for p in parts if p)
    return _MULTI_SLASH_RE.sub("/", joined)


def compute_routing_info(note_id: str, relative_path: str, route_base: str | None) -> NoteRoutingInfo:
    base = normalize_route_base(route_base)
    segments = [s for s in normalize_relative_path(relative_path).split("/") if s]

    if not segments:
        return NoteRoutingInfo(
            id=ROOT_SLUG,
            slug=ROOT_SLUG,
            path="",
            route_base=base,
            full_path=_join_route(base, ROOT_SLUG),
        )

    *dir_segments, file_segment = segments
    slug = slugify_segment(_EXTENSION_RE.sub("", file_segment))
    path = "/".join(s for s in (slugify_segment(d) for d in dir_segments) if s)

    return NoteRoutingInfo(
        id=note_id,
        slug=slug,
        path=path,
        route_base=base,
        full_path=_join_route(base, path, slug),
    )


def compute_routing(note: PublishableNote, *, ctx: PipelineContext | None = None) -> PublishableNote:
    routing = compute_routing_info(note.note_id, note.relative_path, note.folder_config.route_base)
    stage_logger(__name__, ctx).debug(
        "Computed routing %s for relative path '%s'", routing.full_path, note.relative_path
    )
    return note.evolve(routing=routing)
