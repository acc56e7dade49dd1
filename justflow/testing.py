import asyncio
from typing import Any
from collections.abc import Callable

from justflow.middleware import StepWork
from justflow.types import InvocationContext, MiddlewareEventType


class FlowRecorder:
    """
    A middleware that records the context of every step it sees.
    Attach it to a spawner (or an action) and assert on the captured steps.
    """

    __test__ = False

    def __init__(self, on_step: Callable[[InvocationContext], Any] | None = None):
        self.steps: list[InvocationContext] = []
        self._on_step = on_step

    def __call__(self, work: StepWork, ctx: InvocationContext) -> StepWork:
        def recorded() -> Any:
            self.steps.append(ctx)
            if self._on_step is not None:
                self._on_step(ctx)
            return work()

        return recorded

    @property
    def types(self) -> list[MiddlewareEventType]:
        """Step types in execution order."""
        return [ctx.type for ctx in self.steps]

    @property
    def values(self) -> list[Any]:
        """Single values of resume/return/throw steps, in execution order."""
        return [
            ctx.value
            for ctx in self.steps
            if ctx.type
            not in (MiddlewareEventType.FLOW_SPAWN, MiddlewareEventType.ACTION)
        ]

    def of_type(self, step_type: MiddlewareEventType) -> list[InvocationContext]:
        """Filter steps by type."""
        return [ctx for ctx in self.steps if ctx.type is step_type]

    def for_flow(self, flow_id: int) -> list[InvocationContext]:
        """Steps belonging to one flow invocation."""
        return [ctx for ctx in self.steps if ctx.id == flow_id]

    def clear(self) -> None:
        self.steps.clear()


def resolved(value: Any) -> "asyncio.Future[Any]":
    """An already fulfilled future on the running loop."""
    fut = asyncio.get_running_loop().create_future()
    fut.set_result(value)
    return fut


def rejected(error: BaseException) -> "asyncio.Future[Any]":
    """An already rejected future on the running loop."""
    fut = asyncio.get_running_loop().create_future()
    fut.set_exception(error)
    return fut


def pending() -> "asyncio.Future[Any]":
    """A future that settles only when the test settles it."""
    return asyncio.get_running_loop().create_future()
