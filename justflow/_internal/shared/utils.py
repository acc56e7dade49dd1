import asyncio
import itertools
from typing import Any
from collections.abc import Callable

_action_ids = itertools.count(1)


def next_action_id() -> int:
    """Allocate a process-wide unique, monotonically increasing id."""
    return next(_action_ids)


def _resolve_name(target: str | Callable[..., Any]) -> str:
    """Resolve a name string from a string or callable target."""
    if isinstance(target, str):
        return target

    if hasattr(target, "func") and hasattr(target.func, "__name__"):
        return str(target.func.__name__)

    if hasattr(target, "__name__"):
        return str(target.__name__)

    if callable(target):
        return str(type(target).__name__)

    raise ValueError(f"Cannot resolve name for {target}")


def defer_to_next_turn(
    loop: asyncio.AbstractEventLoop, work: Callable[[], Any]
) -> None:
    """Run ``work`` after the current synchronous execution, FIFO with earlier deferrals."""
    loop.call_soon(work)


def describe_value(value: Any, limit: int = 80) -> str:
    """Short repr for error messages and trace lines."""
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text
