from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from collections.abc import Awaitable, Callable, Generator, Iterable

from justflow.actions import current_context
from justflow.middleware import Middleware, _MiddlewareCoordinator
from justflow.types import FlowDefinitionError
from justflow._internal.flow.cancellation import FlowFuture
from justflow._internal.flow.context_builder import build_context_base
from justflow._internal.flow.driver import _FlowDriver
from justflow._internal.shared.utils import _resolve_name

R = TypeVar("R")
T = TypeVar("T")


@dataclass(frozen=True)
class FlowConfig:
    """Configuration captured by a spawner when it first spawns a flow."""

    name: str
    middleware: tuple[Middleware, ...] = ()


class FlowSpawner(Generic[R]):
    """Callable that starts a new flow invocation each time it is called.

    Example:
        @flow
        def load_user(user_id):
            response = yield client.get(f"/users/{user_id}")
            return response.json()

        run_action(lambda: load_user(42))  # -> FlowFuture
    """

    def __init__(
        self,
        generator_function: Callable[..., Generator[Any, Any, R]],
        name: str | None = None,
        middleware: Iterable[Middleware] | None = None,
    ):
        if not callable(generator_function):
            raise FlowDefinitionError(
                f"flow() expects a generator function, got {type(generator_function).__name__}"
            )
        self._generator_function = generator_function
        self._name = name or _resolve_name(generator_function)
        self._coordinator = _MiddlewareCoordinator(middleware)
        functools.update_wrapper(self, generator_function)

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> FlowConfig:
        return FlowConfig(name=self._name, middleware=self._coordinator.snapshot())

    def add_middleware(self, mw: Middleware) -> None:
        """Register a middleware that sees every step of every flow spawned from here."""
        self._coordinator.add_middleware(mw)

    def with_middleware(self, *middleware: Middleware) -> FlowSpawner[R]:
        """Return a new spawner for the same function with extra middleware appended."""
        return FlowSpawner(
            self._generator_function,
            name=self._name,
            middleware=self._coordinator.snapshot() + middleware,
        )

    def __call__(self, *args: Any, **kwargs: Any) -> FlowFuture[R]:
        base = build_context_base(self._name, current_context())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise FlowDefinitionError(
                f"Flow '{self._name}' must be spawned while an asyncio event loop is running."
            ) from e

        self._coordinator.freeze()
        config = self.config
        driver = _FlowDriver(self._generator_function, base, config.middleware, loop)
        return driver.spawn(args, kwargs)

    def __repr__(self) -> str:
        return f"<FlowSpawner {self._name!r}>"


def flow(
    generator_function: Callable[..., Generator[Any, Any, R]] | None = None,
    *,
    name: str | None = None,
    middleware: Iterable[Middleware] | None = None,
) -> Any:
    """Turn a generator function into a flow spawner.

    The body may ``yield`` any awaitable; the ``yield`` expression evaluates
    to the awaitable's result, or raises its error. Usable bare (``@flow``)
    or with options (``@flow(name="fetch", middleware=[...])``).
    """

    def decorator(func: Callable[..., Generator[Any, Any, R]]) -> FlowSpawner[R]:
        return FlowSpawner(func, name=name, middleware=middleware)

    if generator_function is not None:
        return decorator(generator_function)
    return decorator


def to_generator_function(
    fn: Callable[..., Awaitable[T]],
) -> Callable[..., Generator[Any, Any, T]]:
    """Convert an awaitable-returning function into a generator function.

    Lets a flow body use ``yield from`` and keep the awaited result type:

        get_data = to_generator_function(fetch_data)

        @flow
        def sync_user():
            value = yield from get_data("input value")
    """

    @functools.wraps(fn)
    def generator_function(*args: Any, **kwargs: Any) -> Generator[Any, Any, T]:
        return (yield fn(*args, **kwargs))

    return generator_function


def to_generator(awaitable: Awaitable[T]) -> Generator[Any, Any, T]:
    """Generator yielding ``awaitable`` once and returning its result."""
    return (yield awaitable)
