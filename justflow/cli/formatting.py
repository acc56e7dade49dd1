"""Shared formatting helpers for CLI commands."""

from __future__ import annotations

import json
from typing import Any

from justflow.types import InvocationContext, MiddlewareEventType
from justflow._internal.shared.utils import describe_value

_TYPE_COLORS = {
    MiddlewareEventType.ACTION: "blue",
    MiddlewareEventType.FLOW_SPAWN: "cyan",
    MiddlewareEventType.FLOW_RESUME: None,
    MiddlewareEventType.FLOW_RESUME_ERROR: "yellow",
    MiddlewareEventType.FLOW_RETURN: "green",
    MiddlewareEventType.FLOW_THROW: "red",
}


def parse_argument(raw: str) -> Any:
    """Parse a CLI argument as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def lineage(ctx: InvocationContext) -> str:
    return "/".join(str(i) for i in ctx.all_parent_ids + (ctx.id,))


def format_step(ctx: InvocationContext) -> tuple[str, str | None]:
    """Render one step as a trace line and its display color."""
    if ctx.type in (MiddlewareEventType.FLOW_SPAWN, MiddlewareEventType.ACTION):
        shown = ", ".join(describe_value(a, limit=40) for a in ctx.args)
        shown = f"({shown})"
    else:
        shown = describe_value(ctx.value)
    line = f"[{lineage(ctx)}] {ctx.type.value:<17} {ctx.name} {shown}"
    return line, _TYPE_COLORS.get(ctx.type)


def step_to_json(ctx: InvocationContext) -> str:
    """Serialize one step as a JSON line."""
    return json.dumps(
        {
            "type": ctx.type.value,
            "name": ctx.name,
            "id": ctx.id,
            "parent_id": ctx.parent_id,
            "all_parent_ids": list(ctx.all_parent_ids),
            "root_id": ctx.root_id,
            "args": [describe_value(a) for a in ctx.args],
        }
    )
