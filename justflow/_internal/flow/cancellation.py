from __future__ import annotations

import asyncio
from typing import Any, Generic, TypeVar, TYPE_CHECKING
from collections.abc import Callable, Generator

from justflow.types import FlowState

if TYPE_CHECKING:
    from justflow._internal.flow.driver import _FlowDriver

T = TypeVar("T")


class FlowFuture(Generic[T]):
    """Future of a spawned flow's return value, with cooperative cancellation.

    Awaiting it yields the generator's return value or raises the error the
    flow ended with. ``cancel()`` does not cancel the underlying asyncio
    future: it throws :class:`~justflow.types.FlowCancelled` into the flow at
    its current ``yield`` so the body can clean up, or even recover.
    """

    def __init__(self, future: "asyncio.Future[T]", driver: "_FlowDriver"):
        self._future = future
        self._driver = driver

    @property
    def future(self) -> "asyncio.Future[T]":
        """The asyncio future settled by the flow's return or throw step."""
        return self._future

    @property
    def context_id(self) -> int:
        """Id shared by every step context of this flow invocation."""
        return self._driver.base.id

    @property
    def state(self) -> FlowState:
        return self._driver.state

    def cancel(self, reason: str = "FLOW_CANCELLED") -> bool:
        """Inject a cancellation error at the flow's current suspension point.

        Returns True when the request was delivered (or queued for the next
        suspension, when called from inside the running body) and False when
        the flow has already finished or was abandoned after a protocol
        error. Never raises for a finished flow.
        """
        return self._driver.cancel(reason)

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        """True only if the underlying asyncio future was cancelled."""
        return self._future.cancelled()

    def result(self) -> T:
        return self._future.result()

    def exception(self) -> BaseException | None:
        return self._future.exception()

    def add_done_callback(self, fn: Callable[["FlowFuture[T]"], Any]) -> None:
        self._future.add_done_callback(lambda _: fn(self))

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    def __repr__(self) -> str:
        return (
            f"<FlowFuture {self._driver.base.name!r} id={self.context_id} "
            f"state={self.state.value}>"
        )
