"""Ignore-rule evaluation: decides whether a note may be published."""

from __future__ import annotations

from typing import Any, Sequence

from vault_publish.config import IgnoreRule, Primitive
from vault_publish.context import PipelineContext, stage_logger
from vault_publish.frontmatter import MISSING, DomainFrontmatter, get_nested_value
from vault_publish.note import IgnoredByRule, NoteEligibility

PUBLISHABLE = NoteEligibility(is_publishable=True)


def _strict_equals(value: Any, target: Primitive) -> bool:
    # no bool/int cross-matching: True must not match 1
    if isinstance(value, bool) or isinstance(target, bool):
        return isinstance(value, bool) and isinstance(target, bool) and value == target
    if isinstance(value, (int, float)) and isinstance(target, (int, float)):
        return value == target
    return type(value) is type(target) and value == target


def match_ignore_values(value: Any, targets: Sequence[Primitive]) -> tuple[bool, Primitive]:
    """Return ``(matched, target)`` for the first target equal to *value*.

    List values are compared element-wise.
    """
    candidates = value if isinstance(value, (list, tuple)) else [value]
    for item in candidates:
        for target in targets:
            if _strict_equals(item, target):
                return True, target
    return False, None


def evaluate_ignore_rules(
    frontmatter: DomainFrontmatter,
    rules: Sequence[IgnoreRule] | None,
    *,
    ctx: PipelineContext | None = None,
) -> NoteEligibility:
    """Evaluate *rules* in order against *frontmatter*; the first match wins."""
    log = stage_logger(__name__, ctx)

    if not rules:
        log.debug("No ignore rules configured, note is publishable")
        return PUBLISHABLE

    for index, rule in enumerate(rules):
        value = get_nested_value(frontmatter.nested, rule.property)
        if value is MISSING:
            continue

        if rule.ignore_if is not None and isinstance(value, bool) and value == rule.ignore_if:
            log.info("Note ignored by ignoreIf rule %d on '%s' (value=%r)", index, rule.property, value)
            return NoteEligibility(
                is_publishable=False,
                ignored_by_rule=IgnoredByRule(
                    property=rule.property,
                    reason="ignoreIf",
                    matched_value=value,
                    rule_index=index,
                ),
            )

        if rule.ignore_values:
            matched, target = match_ignore_values(value, rule.ignore_values)
            if matched:
                log.info("Note ignored by ignoreValues rule %d on '%s' (matched=%r)", index, rule.property, target)
                return NoteEligibility(
                    is_publishable=False,
                    ignored_by_rule=IgnoredByRule(
                        property=rule.property,
                        reason="ignoreValues",
                        matched_value=target,
                        rule_index=index,
                    ),
                )

    log.debug("No ignore rule matched, note is publishable")
    return PUBLISHABLE
