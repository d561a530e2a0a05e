"""Inline ``= this.<property>`` expressions rendered from frontmatter."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from vault_publish.context import PipelineContext, stage_logger
from vault_publish.frontmatter import MISSING, DomainFrontmatter, get_nested_value
from vault_publish.note import PublishableNote

# `= this.some.path` with optional whitespace inside the backticks
_INLINE_EXPR_RE = re.compile(r"`\s*=\s*this\.([^`\s][^`]*?)\s*`")


@dataclass(frozen=True)
class InlineExpression:
    raw: str
    property_path: str
    resolved_value: Any
    rendered_text: str


def render_value(value: Any) -> str:
    """Display text for a frontmatter value.

    >>> render_value(["B", "A"])
    'A, B'
    """
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(sorted(render_value(v) for v in value))
    if isinstance(value, Mapping):
        return ", ".join(f"{k}: {render_value(value[k])}" for k in sorted(value, key=str))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def render_inline_expressions(
    markdown: str, frontmatter: DomainFrontmatter
) -> tuple[str, list[InlineExpression]]:
    expressions: list[InlineExpression] = []

    def substitute(match: re.Match[str]) -> str:
        path = match.group(1).strip()
        value = get_nested_value(frontmatter.nested, path)
        text = render_value(value)
        expressions.append(
            InlineExpression(
                raw=match.group(0),
                property_path=path,
                resolved_value=None if value is MISSING else value,
                rendered_text=text,
            )
        )
        return text

    return _INLINE_EXPR_RE.sub(substitute, markdown), expressions


def render_note_expressions(note: PublishableNote, *, ctx: PipelineContext | None = None) -> PublishableNote:
    content, expressions = render_inline_expressions(note.content, note.frontmatter)
    if expressions:
        stage_logger(__name__, ctx).debug("Rendered %d inline expression(s)", len(expressions))
    return note.evolve(content=content)
