"""Frontmatter normalisation: raw YAML mapping -> flat + nested camelCase form."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Mapping

# Separators that split a property key into camelCase words
_WORD_SEP_RE = re.compile(r"[-_\s]+")


class _Missing:
    """Sentinel for a property path that does not exist."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True)
class DomainFrontmatter:
    """Canonical frontmatter of a note.

    ``flat`` maps normalized (possibly dotted) keys to their values,
    ``nested`` holds the same values as an object tree and ``tags`` is the
    list extracted from the ``tags`` property.
    """

    flat: dict[str, Any] = field(default_factory=dict)
    nested: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"flat": self.flat, "nested": self.nested, "tags": list(self.tags)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "DomainFrontmatter":
        data = data or {}
        return cls(
            flat=dict(data.get("flat") or {}),
            nested=dict(data.get("nested") or {}),
            tags=list(data.get("tags") or []),
        )


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _camel_segment(segment: str) -> str:
    words = [w for w in _WORD_SEP_RE.split(_strip_diacritics(segment).strip()) if w]
    if not words:
        return ""
    if len(words) == 1:
        # already camelCase (or a single word): leave untouched
        return words[0]
    head, *rest = words
    return head.lower() + "".join(w[:1].upper() + w[1:].lower() for w in rest)


def normalize_property_key(key: str) -> str:
    """Return the camelCase form of *key*, segment by segment on ``.``.

    >>> normalize_property_key("type-creature")
    'typeCreature'
    >>> normalize_property_key("meta.date_created")
    'meta.dateCreated'
    """
    return ".".join(_camel_segment(seg) for seg in str(key).split("."))


def _path_segments(path: str) -> list[str]:
    return [s for s in (normalize_property_key(p) for p in path.split(".")) if s]


def _set_nested(target: dict[str, Any], segments: list[str], value: Any) -> None:
    current = target
    for key in segments[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[segments[-1]] = value


def _extract_tags(raw: Any) -> list[str]:
    if isinstance(raw, list) and all(isinstance(t, str) for t in raw):
        return list(raw)
    if isinstance(raw, str):
        return [raw]
    return []


def normalize_frontmatter(raw: Mapping[str, Any] | DomainFrontmatter | None) -> DomainFrontmatter:
    """Build a :class:`DomainFrontmatter` from a raw frontmatter mapping.

    Never raises: ``None`` or a non-mapping yields empty structures.
    """
    if isinstance(raw, DomainFrontmatter):
        source: Mapping[str, Any] = raw.flat
        fallback_tags: Any = raw.tags
    elif isinstance(raw, Mapping):
        source = raw
        fallback_tags = None
    else:
        return DomainFrontmatter()

    flat: dict[str, Any] = {}
    nested: dict[str, Any] = {}

    for key, value in source.items():
        normalized = normalize_property_key(str(key))
        if not normalized:
            continue
        flat[normalized] = value

        segments = _path_segments(normalized)
        if not segments:
            continue
        if len(segments) > 1:
            _set_nested(nested, segments, value)
            continue

        existing = nested.get(segments[0], MISSING)
        if isinstance(existing, dict) and existing:
            # populated by a deeper dotted key, keep it
            continue
        nested[segments[0]] = value

    tags_raw = source.get("tags", fallback_tags)
    return DomainFrontmatter(flat=flat, nested=nested, tags=_extract_tags(tags_raw))


def get_nested_value(nested: Mapping[str, Any], property_path: str) -> Any:
    """Resolve a dotted *property_path* in *nested*; :data:`MISSING` if absent."""
    current: Any = nested
    for segment in _path_segments(property_path):
        if not isinstance(current, Mapping) or segment not in current:
            return MISSING
        current = current[segment]
    return current


def extract_frontmatter_strings(source: Any, current_path: str = "") -> list[tuple[str, str]]:
    """Return ``(path, value)`` for every string leaf under *source*.

    Paths use ``a.b`` for mappings and ``a[0]`` for sequences.
    """
    results: list[tuple[str, str]] = []

    def visit(value: Any, path: str) -> None:
        if value is None:
            return
        if isinstance(value, str):
            results.append((path, value))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                visit(item, f"{path}[{index}]" if path else f"[{index}]")
        elif isinstance(value, Mapping):
            for key, item in value.items():
                visit(item, f"{path}.{key}" if path else str(key))

    visit(source, current_path)
    return results
