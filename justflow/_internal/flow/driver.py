from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any
from collections.abc import Callable, Generator, Mapping

from justflow.middleware import Middleware
from justflow.types import (
    FlowCancelled,
    FlowDefinitionError,
    FlowProtocolError,
    FlowState,
    MiddlewareEventType,
)
from justflow._internal.flow.cancellation import FlowFuture
from justflow._internal.flow.context_builder import ContextBase
from justflow._internal.flow.interception import _StepInterceptor
from justflow._internal.shared.utils import defer_to_next_turn, describe_value

logger = logging.getLogger("justflow.driver")

# Errors a flow body may end with. CancelledError is a BaseException but is
# an ordinary outcome of awaiting a cancelled future.
_FLOW_ERRORS = (Exception, asyncio.CancelledError)

_Outcome = tuple[bool, Any]


class _FlowDriver:
    """Advances one flow generator step by step until the outer future settles.

    Every generator operation runs inside an intercepted step; the outcome
    is inspected only after the step's context has been restored. Terminal
    settlement is always deferred to the next loop turn.
    """

    def __init__(
        self,
        generator_function: Callable[..., Generator[Any, Any, Any]],
        base: ContextBase,
        middleware: tuple[Middleware, ...],
        loop: asyncio.AbstractEventLoop,
    ):
        self._generator_function = generator_function
        self._interceptor = _StepInterceptor(base, middleware)
        self._loop = loop
        self._outer: asyncio.Future[Any] = loop.create_future()
        self._generator: Generator[Any, Any, Any] | None = None
        self._state = FlowState.SPAWNING

        # Awaited future of the current suspension and whether we created it.
        self._waiting: asyncio.Future[Any] | None = None
        self._owns_waiting = False

        # Cancellation requested while the body was running.
        self._pending_cancel: FlowCancelled | None = None

    @property
    def base(self) -> ContextBase:
        return self._interceptor.base

    @property
    def state(self) -> FlowState:
        return self._state

    def spawn(self, args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> FlowFuture[Any]:
        """Run the spawn step, which creates the generator and kicks it off."""

        def init() -> None:
            try:
                generator = self._generator_function(*args, **kwargs)
            except _FLOW_ERRORS as e:
                self._schedule_throw(e)
                return
            if not inspect.isgenerator(generator):
                raise FlowDefinitionError(
                    f"Flow '{self.base.name}' must be a generator function, "
                    f"but calling it returned {type(generator).__name__}. "
                    f"Use 'yield' to wait on awaitables inside the flow body."
                )
            self._generator = generator
            self._on_fulfilled(None)

        logger.debug(f"Spawning flow '{self.base.name}' (id={self.base.id})")
        self._interceptor.spawn(init, args, kwargs)
        return FlowFuture(self._outer, self)

    def cancel(self, reason: str) -> bool:
        if self._generator is None or self._state in (
            FlowState.RETURNING,
            FlowState.THROWING,
            FlowState.SETTLED,
            FlowState.ABANDONED,
        ):
            return False

        error = FlowCancelled(reason)
        if self._state is FlowState.RUNNING:
            if self._pending_cancel is not None:
                return False
            self._pending_cancel = error
            return True

        self._detach_waiting()
        logger.debug(f"Cancelling flow '{self.base.name}' (id={self.base.id})")
        self._on_rejected(error)
        return True

    def _require_generator(self) -> Generator[Any, Any, Any]:
        if self._generator is None:
            raise RuntimeError(
                f"Flow '{self.base.name}' (id={self.base.id}) was resumed before "
                f"its generator was created"
            )
        return self._generator

    def _on_fulfilled(self, value: Any) -> None:
        generator = self._require_generator()
        self._continue(
            self._advance(generator.send, value, MiddlewareEventType.FLOW_RESUME)
        )

    def _on_rejected(self, error: BaseException) -> None:
        generator = self._require_generator()
        self._continue(
            self._advance(generator.throw, error, MiddlewareEventType.FLOW_RESUME_ERROR)
        )

    def _advance(
        self,
        operation: Callable[[Any], Any],
        value: Any,
        type: MiddlewareEventType,
    ) -> _Outcome | None:
        """Run one intercepted generator operation and capture its outcome."""
        outcome: list[_Outcome] = []

        def work() -> None:
            try:
                yielded = operation(value)
            except StopIteration as stop:
                outcome.append((True, stop.value))
            else:
                outcome.append((False, yielded))

        self._state = FlowState.RUNNING
        try:
            self._interceptor.run(work, type, value)
        except _FLOW_ERRORS as e:
            self._schedule_throw(e)
            # The flow is rejected; a generator left suspended by failing
            # middleware is closed so its cleanup still runs.
            suspended = bool(outcome) and not outcome[0][0]
            self._abandon(outcome[0][1] if suspended else None)
            return None

        if not outcome:
            # Middleware skipped the step; the generator was not advanced.
            logger.debug(
                f"Step {type.value} of flow '{self.base.name}' (id={self.base.id}) "
                f"was not executed by middleware"
            )
            self._state = FlowState.SUSPENDED
            return None
        return outcome[0]

    def _continue(self, outcome: _Outcome | None) -> None:
        if outcome is None:
            return
        done, value = outcome
        if done:
            self._schedule_return(value)
            return

        if not inspect.isawaitable(value):
            self._state = FlowState.ABANDONED
            self._abandon(value)
            raise FlowProtocolError(
                f"Only awaitables can be yielded to a flow, got: {describe_value(value)} "
                f"in flow '{self.base.name}'"
            )

        if self._pending_cancel is not None:
            error, self._pending_cancel = self._pending_cancel, None
            if inspect.iscoroutine(value):
                value.close()
            self._state = FlowState.SUSPENDED
            self._on_rejected(error)
            return

        self._suspend(value)

    def _suspend(self, awaitable: Any) -> None:
        if isinstance(awaitable, FlowFuture):
            future, owned = awaitable.future, False
        elif asyncio.isfuture(awaitable):
            future, owned = awaitable, False
        else:
            future, owned = asyncio.ensure_future(awaitable, loop=self._loop), True

        self._waiting = future
        self._owns_waiting = owned
        self._state = FlowState.SUSPENDED
        future.add_done_callback(self._on_waiting_done)

    def _on_waiting_done(self, future: asyncio.Future[Any]) -> None:
        if future is not self._waiting:
            return
        self._waiting = None
        try:
            value = future.result()
        except _FLOW_ERRORS as e:
            self._on_rejected(e)
        else:
            self._on_fulfilled(value)

    def _abandon(self, yielded: Any) -> None:
        """Stop driving the generator and run its cleanup without resuming it."""
        if inspect.iscoroutine(yielded):
            yielded.close()
        self._require_generator().close()

    def _detach_waiting(self) -> None:
        future, self._waiting = self._waiting, None
        if future is None:
            return
        future.remove_done_callback(self._on_waiting_done)
        if self._owns_waiting:
            future.cancel()

    def _schedule_return(self, value: Any) -> None:
        self._state = FlowState.RETURNING
        defer_to_next_turn(
            self._loop,
            lambda: self._interceptor.run(
                lambda: self._resolve(value), MiddlewareEventType.FLOW_RETURN, value
            ),
        )

    def _schedule_throw(self, error: BaseException) -> None:
        self._state = FlowState.THROWING
        defer_to_next_turn(
            self._loop,
            lambda: self._interceptor.run(
                lambda: self._reject(error), MiddlewareEventType.FLOW_THROW, error
            ),
        )

    def _resolve(self, value: Any) -> None:
        self._state = FlowState.SETTLED
        if self._outer.done():
            return
        logger.debug(
            f"Flow '{self.base.name}' (id={self.base.id}) returned {describe_value(value)}"
        )
        self._outer.set_result(value)

    def _reject(self, error: BaseException) -> None:
        self._state = FlowState.SETTLED
        if self._outer.done():
            return
        logger.debug(
            f"Flow '{self.base.name}' (id={self.base.id}) failed: {error!r}"
        )
        if isinstance(error, asyncio.CancelledError):
            self._outer.cancel()
        else:
            self._outer.set_exception(error)
