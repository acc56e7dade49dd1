"""Tracked action contexts.

Flows can only be spawned while an action is running: the action provides
the ids, lineage, tree and scope that every flow step inherits. This module
owns the ambient "current context" and the bracketing helper that sets it
for the duration of one unit of work.
"""

from __future__ import annotations

import contextvars
import functools
from types import MappingProxyType
from typing import Any, TypeVar
from collections.abc import Callable, Iterable

from justflow.middleware import Middleware, apply_middleware
from justflow.types import InvocationContext, MiddlewareEventType
from justflow._internal.shared.utils import _resolve_name, next_action_id

T = TypeVar("T")

_current_context: contextvars.ContextVar[InvocationContext | None] = (
    contextvars.ContextVar("justflow_current_context", default=None)
)

__all__ = [
    "action",
    "current_context",
    "nearest_action_ancestor",
    "next_action_id",
    "run_action",
    "run_with_context",
]


def current_context() -> InvocationContext | None:
    """Return the context of the step currently executing, if any."""
    return _current_context.get()


def nearest_action_ancestor(
    ctx: InvocationContext | None,
) -> InvocationContext | None:
    """Return ``ctx`` itself when it is an action, else its action boundary."""
    if ctx is None:
        return None
    if ctx.is_action:
        return ctx
    return ctx.parent_action_event


def run_with_context(
    ctx: InvocationContext,
    work: Callable[[], T],
    middleware: Iterable[Middleware] = (),
) -> T:
    """Run ``work`` with ``ctx`` as the ambient context.

    Middleware is applied around the work and sees ``ctx`` both as its
    argument and as ``current_context()``. The previous ambient context is
    restored even when the work raises.
    """
    token = _current_context.set(ctx)
    try:
        return apply_middleware(work, ctx, middleware)()
    finally:
        _current_context.reset(token)


def run_action(
    fn: Callable[..., T],
    *args: Any,
    name: str | None = None,
    tree: Any = None,
    scope: Any = None,
    middleware: Iterable[Middleware] = (),
    **kwargs: Any,
) -> T:
    """Run ``fn`` as a tracked action.

    Without an active context this starts a new root action; otherwise the
    action becomes a child of the current context and inherits its tree and
    scope unless they are given explicitly.
    """
    action_id = next_action_id()
    parent = current_context()

    if parent is None:
        ctx = InvocationContext(
            name=name or _resolve_name(fn),
            id=action_id,
            type=MiddlewareEventType.ACTION,
            args=args,
            kwargs=MappingProxyType(dict(kwargs)),
            tree=tree,
            scope=scope,
            parent_id=0,
            all_parent_ids=(),
            root_id=action_id,
        )
    else:
        ctx = InvocationContext(
            name=name or _resolve_name(fn),
            id=action_id,
            type=MiddlewareEventType.ACTION,
            args=args,
            kwargs=MappingProxyType(dict(kwargs)),
            tree=tree if tree is not None else parent.tree,
            scope=scope if scope is not None else parent.scope,
            parent_id=parent.id,
            all_parent_ids=parent.all_parent_ids + (parent.id,),
            root_id=parent.root_id,
            parent_event=parent,
            parent_action_event=nearest_action_ancestor(parent),
        )

    return run_with_context(ctx, lambda: fn(*args, **kwargs), middleware)


def action(
    fn: Callable[..., T] | None = None,
    *,
    name: str | None = None,
    tree: Any = None,
    scope: Any = None,
    middleware: Iterable[Middleware] = (),
) -> Any:
    """Decorator form of :func:`run_action`.

    Usable bare (``@action``) or with options (``@action(name="load")``).
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        mws = tuple(middleware)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return run_action(
                func,
                *args,
                name=name,
                tree=tree,
                scope=scope,
                middleware=mws,
                **kwargs,
            )

        return wrapper

    if fn is not None:
        return decorator(fn)
    return decorator
