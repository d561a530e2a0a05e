"""Content sanitization: regex cleanup rules and frontmatter exclusion.

Rules are data (:class:`~vault_publish.config.SanitizationRule`), compiled
once per rule list.  A rule either carries its own ``regex`` or names one of
the built-in rules in :data:`BUILTIN_RULES`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence

from vault_publish.config import SanitizationRule
from vault_publish.context import PipelineContext, stage_logger
from vault_publish.errors import UnsupportedSanitizationRule
from vault_publish.frontmatter import DomainFrontmatter, normalize_property_key
from vault_publish.note import PublishableNote

FENCED_CODE_BLOCKS = "remove-fenced-code-blocks"

_FENCED_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```|~~~[\s\S]*?~~~")
_FRONTMATTER_BLOCK_RE = re.compile(r"\A---[ \t]*\r?\n[\s\S]*?\r?\n---[ \t]*(?:\r?\n|\Z)")

BUILTIN_RULES: dict[str, re.Pattern[str]] = {
    FENCED_CODE_BLOCKS: _FENCED_CODE_BLOCK_RE,
}


@dataclass(frozen=True)
class CompiledRule:
    name: str
    pattern: re.Pattern[str]
    replacement: str


@dataclass(frozen=True)
class SanitizeResult:
    markdown: str
    applied_rules: tuple[str, ...] = ()


def compile_rules(rules: Iterable[SanitizationRule | CompiledRule] | None) -> list[CompiledRule]:
    """Compile enabled *rules*; raises :class:`UnsupportedSanitizationRule`.

    Already compiled rules are kept as they are.
    """
    compiled: list[CompiledRule] = []
    for rule in rules or ():
        if isinstance(rule, CompiledRule):
            compiled.append(rule)
            continue
        if not rule.is_enabled:
            continue
        if not rule.regex:
            builtin = BUILTIN_RULES.get(rule.name)
            if builtin is None:
                raise UnsupportedSanitizationRule(rule.name)
            compiled.append(CompiledRule(rule.name, builtin, rule.replacement))
            continue
        try:
            pattern = re.compile(rule.regex, re.MULTILINE)
        except re.error as exc:
            raise UnsupportedSanitizationRule(rule.name, f"invalid regex: {exc}") from exc
        compiled.append(CompiledRule(rule.name, pattern, rule.replacement))
    return compiled


def apply_rules(markdown: str, compiled: Sequence[CompiledRule]) -> SanitizeResult:
    applied: list[str] = []
    result = markdown
    for rule in compiled:
        updated = rule.pattern.sub(rule.replacement, result)
        if updated != result:
            applied.append(rule.name)
        result = updated
    return SanitizeResult(markdown=result, applied_rules=tuple(applied))


def sanitize_markdown(markdown: str, rules: Sequence[SanitizationRule | CompiledRule] | None) -> SanitizeResult:
    """Apply every enabled rule in list order as a global replace.

    >>> sanitize_markdown("before\\n```js\\ncode\\n```\\nafter",
    ...                   [SanitizationRule(name=FENCED_CODE_BLOCKS)]).markdown
    'before\\n\\nafter'
    """
    if not rules:
        return SanitizeResult(markdown=markdown)
    return apply_rules(markdown, compile_rules(rules))


def strip_frontmatter_block(markdown: str) -> str:
    """Remove a leading ``---`` YAML block left in the body, if any."""
    return _FRONTMATTER_BLOCK_RE.sub("", markdown, count=1)


# ---------------------------------------------------------------------------
# Frontmatter exclusion
# ---------------------------------------------------------------------------


def _prune(tree: dict[str, Any], keys: set[str]) -> dict[str, Any]:
    pruned: dict[str, Any] = {}
    for key, value in tree.items():
        if normalize_property_key(key) in keys:
            continue
        if isinstance(value, dict):
            child = _prune(value, keys)
            if value and not child:
                continue
            pruned[key] = child
        else:
            pruned[key] = value
    return pruned


def _drop_path(tree: dict[str, Any], segments: list[str]) -> dict[str, Any]:
    head, *rest = segments
    result: dict[str, Any] = {}
    for key, value in tree.items():
        if key != head:
            result[key] = value
        elif rest and isinstance(value, dict):
            child = _drop_path(value, rest)
            if child:
                result[key] = child
    return result


def exclude_frontmatter_keys(frontmatter: DomainFrontmatter, keys: Iterable[str]) -> DomainFrontmatter:
    """Drop *keys* (plain or dotted) from every level of *frontmatter*."""
    keys = [k for k in keys if k]
    plain = {normalize_property_key(k) for k in keys if "." not in k}
    dotted = [normalize_property_key(k) for k in keys if "." in k]
    if not plain and not dotted:
        return frontmatter

    flat = {
        k: v
        for k, v in frontmatter.flat.items()
        if k not in plain and k not in dotted and not any(seg in plain for seg in k.split("."))
    }
    nested = _prune(frontmatter.nested, plain)
    for path in dotted:
        nested = _drop_path(nested, path.split("."))
    tags = [] if "tags" in plain else list(frontmatter.tags)
    return DomainFrontmatter(flat=flat, nested=nested, tags=tags)


def exclude_frontmatter_tags(frontmatter: DomainFrontmatter, tags: Iterable[str]) -> DomainFrontmatter:
    """Remove *tags* (case-insensitive) from the tag list and ``tags`` property."""
    excluded = {t.lower() for t in tags}
    if not excluded or not frontmatter.tags:
        return frontmatter
    kept = [t for t in frontmatter.tags if t.lower() not in excluded]
    if len(kept) == len(frontmatter.tags):
        return frontmatter
    flat = dict(frontmatter.flat)
    nested = dict(frontmatter.nested)
    if "tags" in flat:
        flat["tags"] = kept
    if "tags" in nested:
        nested["tags"] = kept
    return DomainFrontmatter(flat=flat, nested=nested, tags=kept)


def sanitize_note(
    note: PublishableNote,
    rules: Sequence[SanitizationRule | CompiledRule] | None,
    *,
    keys_to_exclude: Sequence[str] = (),
    tags_to_exclude: Sequence[str] = (),
    ctx: PipelineContext | None = None,
) -> PublishableNote:
    log = stage_logger(__name__, ctx)

    frontmatter = exclude_frontmatter_keys(note.frontmatter, keys_to_exclude)
    frontmatter = exclude_frontmatter_tags(frontmatter, tags_to_exclude)

    result = sanitize_markdown(strip_frontmatter_block(note.content), rules)
    if result.applied_rules:
        log.debug("Applied sanitization rules: %s", ", ".join(result.applied_rules))

    return replace(note, content=result.markdown, frontmatter=frontmatter)
