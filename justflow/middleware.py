import logging
import time
from typing import Any
from collections.abc import Callable, Iterable

from justflow.types import InvocationContext

StepWork = Callable[[], Any]
Middleware = Callable[[StepWork, InvocationContext], StepWork]


def apply_middleware(
    work: StepWork,
    ctx: InvocationContext,
    middleware: Iterable[Middleware],
) -> StepWork:
    """Wrap a unit of work with every middleware, in registration order.

    The first registered middleware wraps the bare work, so it runs closest
    to the step; the last registered one is outermost.
    """
    wrapped = work
    for mw in middleware:
        wrapped = mw(wrapped, ctx)
    return wrapped


def simple_logging_middleware(work: StepWork, ctx: InvocationContext) -> StepWork:
    """A simple middleware that logs each step and its duration using the standard logging module."""
    logger = logging.getLogger("justflow")

    def wrapped() -> Any:
        start = time.perf_counter()
        try:
            return work()
        finally:
            elapsed = time.perf_counter() - start
            logger.debug(
                f"{ctx.type.value} '{ctx.name}' (id={ctx.id}) took {elapsed:.4f}s"
            )

    return wrapped


class _MiddlewareCoordinator:
    def __init__(self, middleware: Iterable[Middleware] | None = None):
        self.middleware: list[Middleware] = (
            list(middleware) if middleware is not None else []
        )
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _assert_mutable(self, action: str) -> None:
        if self._frozen:
            raise RuntimeError(
                f"Flow configuration is frozen after first spawn; cannot {action}."
            )

    def add_middleware(self, mw: Middleware) -> None:
        self._assert_mutable("add middleware")
        if not callable(mw):
            raise TypeError(f"Middleware must be callable, got {type(mw).__name__}")
        self.middleware.append(mw)

    def snapshot(self) -> tuple[Middleware, ...]:
        return tuple(self.middleware)
