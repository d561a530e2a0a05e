"""Structured logging context passed explicitly into pipeline stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, MutableMapping


class ContextAdapter(logging.LoggerAdapter):
    """Prefix every message with ``key=value`` pairs from the context."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        fields = self.extra or {}
        if not fields:
            return msg, kwargs
        prefix = " ".join(f"{k}={v}" for k, v in fields.items())
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("publish_context", dict(fields))
        kwargs["extra"] = extra
        return f"[{prefix}] {msg}", kwargs


@dataclass(frozen=True)
class PipelineContext:
    """Identifies the run (and note) a stage is working on."""

    fields: dict[str, Any] = field(default_factory=dict)

    def child(self, **fields: Any) -> "PipelineContext":
        merged = dict(self.fields)
        merged.update({k: v for k, v in fields.items() if v is not None})
        return replace(self, fields=merged)

    def logger(self, name: str) -> ContextAdapter:
        return ContextAdapter(logging.getLogger(name), dict(self.fields))


EMPTY_CONTEXT = PipelineContext()


def stage_logger(name: str, ctx: PipelineContext | None) -> ContextAdapter:
    return (ctx or EMPTY_CONTEXT).logger(name)
