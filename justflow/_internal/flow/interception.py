from __future__ import annotations

from typing import Any
from collections.abc import Callable, Mapping

from justflow.actions import run_with_context
from justflow.middleware import Middleware
from justflow.types import InvocationContext, MiddlewareEventType
from justflow._internal.flow.context_builder import ContextBase


class _StepInterceptor:
    """Runs each discrete flow step inside its own context, through middleware."""

    def __init__(self, base: ContextBase, middleware: tuple[Middleware, ...]):
        self._base = base
        self._middleware = middleware

    @property
    def base(self) -> ContextBase:
        return self._base

    def run(
        self,
        work: Callable[[], None],
        type: MiddlewareEventType,
        value: Any,
    ) -> None:
        """Run a single-value step (resume, resume-error, return, throw)."""
        self._run(self._base.step(type, (value,)), work)

    def spawn(
        self,
        work: Callable[[], None],
        args: tuple[Any, ...],
        kwargs: Mapping[str, Any],
    ) -> None:
        """Run the spawn step, which carries the call arguments."""
        self._run(self._base.step(MiddlewareEventType.FLOW_SPAWN, args, kwargs), work)

    def _run(self, ctx: InvocationContext, work: Callable[[], None]) -> None:
        run_with_context(ctx, work, self._middleware)
