import asyncio
import pytest
from typing import Any
from collections.abc import Callable, Generator

from justflow import (
    FlowDefinitionError,
    FlowFuture,
    FlowProtocolError,
    FlowRecorder,
    FlowState,
    flow,
    run_action,
    to_generator,
    to_generator_function,
)
from justflow.testing import pending, rejected, resolved


@pytest.mark.asyncio
async def test_flow_returns_final_value(spawn: Callable[..., FlowFuture[Any]]) -> None:
    @flow
    def add_one() -> Generator[Any, Any, int]:
        a = yield resolved(1)
        return a + 1

    assert await spawn(add_one) == 2


@pytest.mark.asyncio
async def test_flow_rejects_with_awaited_error(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def boom() -> Generator[Any, Any, None]:
        yield rejected(ValueError("boom"))

    with pytest.raises(ValueError, match="boom"):
        await spawn(boom)


@pytest.mark.asyncio
async def test_flow_rejects_with_uncaught_body_error(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    error = KeyError("missing")

    @flow
    def failing() -> Generator[Any, Any, None]:
        yield resolved(None)
        raise error

    future = spawn(failing)
    with pytest.raises(KeyError) as exc_info:
        await future
    assert exc_info.value is error
    assert future.state is FlowState.SETTLED


@pytest.mark.asyncio
async def test_body_can_catch_rejection_and_continue(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def recovering() -> Generator[Any, Any, str]:
        try:
            yield rejected(RuntimeError("transient"))
        except RuntimeError as e:
            value = yield resolved(f"recovered from {e}")
            return value
        return "unreachable"

    assert await spawn(recovering) == "recovered from transient"


@pytest.mark.asyncio
async def test_coroutines_and_tasks_can_be_yielded(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    async def double(x: int) -> int:
        await asyncio.sleep(0)
        return x * 2

    @flow
    def mixed() -> Generator[Any, Any, int]:
        a = yield double(2)
        b = yield asyncio.ensure_future(double(a))
        c = yield asyncio.sleep(0, result=b + 1)
        return c

    assert await spawn(mixed) == 9


@pytest.mark.asyncio
async def test_spawn_arguments_are_passed_to_generator(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def greet(name: str, punctuation: str = ".") -> Generator[Any, Any, str]:
        greeting = yield resolved(f"hello {name}")
        return greeting + punctuation

    assert await spawn(greet, "ada", punctuation="!") == "hello ada!"


@pytest.mark.asyncio
async def test_non_awaitable_yield_raises_synchronously(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    cleaned: list[str] = []

    @flow
    def bad() -> Generator[Any, Any, None]:
        try:
            yield 5
        finally:
            cleaned.append("bad")

    with pytest.raises(FlowProtocolError, match="Only awaitables can be yielded"):
        spawn(bad)
    assert cleaned == ["bad"]


@pytest.mark.asyncio
async def test_non_awaitable_after_suspension_is_a_loop_defect(
    spawn: Callable[..., FlowFuture[Any]], loop_errors: list[BaseException]
) -> None:
    cleaned: list[str] = []

    @flow
    def bad_later() -> Generator[Any, Any, None]:
        try:
            yield resolved(1)
            yield "not awaitable"
        finally:
            cleaned.append("bad_later")

    future = spawn(bad_later)
    for _ in range(5):
        await asyncio.sleep(0)

    assert len(loop_errors) == 1
    assert isinstance(loop_errors[0], FlowProtocolError)
    assert not future.done()
    assert cleaned == ["bad_later"]
    assert future.state is FlowState.ABANDONED
    assert future.cancel() is False
    await asyncio.sleep(0)
    assert not future.done()


@pytest.mark.asyncio
async def test_non_generator_function_is_rejected_at_spawn(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    def not_a_generator() -> int:
        return 1

    spawner = flow(not_a_generator)
    with pytest.raises(FlowDefinitionError, match="must be a generator function"):
        spawn(spawner)


@pytest.mark.asyncio
async def test_spawn_outside_action_fails() -> None:
    @flow
    def orphan() -> Generator[Any, Any, None]:
        yield resolved(None)

    with pytest.raises(FlowDefinitionError, match="parent context"):
        orphan()


def test_spawn_without_running_loop_fails() -> None:
    @flow
    def offline() -> Generator[Any, Any, None]:
        yield None

    with pytest.raises(FlowDefinitionError, match="event loop"):
        run_action(offline)


@pytest.mark.asyncio
async def test_terminal_settlement_is_deferred(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def immediate() -> Generator[Any, Any, int]:
        return 3
        yield  # noqa

    future = spawn(immediate)
    assert not future.done()
    assert future.state is FlowState.RETURNING

    await asyncio.sleep(0)
    assert future.done()
    assert future.result() == 3


@pytest.mark.asyncio
async def test_sync_body_error_before_first_yield_is_deferred(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def eager_failure() -> Generator[Any, Any, None]:
        raise ValueError("early")
        yield  # noqa

    future = spawn(eager_failure)
    assert not future.done()
    assert future.state is FlowState.THROWING

    with pytest.raises(ValueError, match="early"):
        await future


@pytest.mark.asyncio
async def test_cancelled_awaitable_delivers_cancelled_error(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    waiting = pending()

    @flow
    def observes_cancel() -> Generator[Any, Any, str]:
        try:
            yield waiting
        except asyncio.CancelledError:
            return "saw cancel"
        return "no cancel"

    future = spawn(observes_cancel)
    waiting.cancel()
    assert await future == "saw cancel"


@pytest.mark.asyncio
async def test_uncaught_cancelled_error_cancels_outer_future(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    waiting = pending()

    @flow
    def ignores_cancel() -> Generator[Any, Any, None]:
        yield waiting

    future = spawn(ignores_cancel)
    waiting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await future
    assert future.cancelled()


@pytest.mark.asyncio
async def test_yields_resume_in_order(spawn: Callable[..., FlowFuture[Any]]) -> None:
    recorder = FlowRecorder()
    first, second = pending(), pending()
    seen: list[str] = []

    @flow(middleware=[recorder])
    def sequential() -> Generator[Any, Any, list[str]]:
        seen.append((yield first))
        seen.append((yield second))
        return seen

    future = spawn(sequential)
    # Settling the second awaitable early must not resume the flow out of order.
    second.set_result("b")
    await asyncio.sleep(0)
    assert seen == []

    first.set_result("a")
    assert await future == ["a", "b"]
    assert recorder.values == [None, "a", "b", ["a", "b"]]


@pytest.mark.asyncio
async def test_independent_flows_do_not_share_state(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def echo(value: int) -> Generator[Any, Any, int]:
        result = yield asyncio.sleep(0, result=value)
        return result

    futures = [spawn(echo, i) for i in range(5)]
    assert await asyncio.gather(*futures) == [0, 1, 2, 3, 4]
    assert len({f.context_id for f in futures}) == 5


@pytest.mark.asyncio
async def test_flow_future_can_be_yielded_by_another_flow(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    recorder = FlowRecorder()

    @flow(middleware=[recorder])
    def inner(x: int) -> Generator[Any, Any, int]:
        value = yield resolved(x * 10)
        return value

    @flow(middleware=[recorder])
    def outer() -> Generator[Any, Any, int]:
        a = yield inner(1)
        b = yield inner(2)
        return a + b

    outer_future = spawn(outer)
    assert await outer_future == 30

    outer_id = outer_future.context_id
    outer_spawn = recorder.for_flow(outer_id)[0]
    inner_spawns = [
        ctx for ctx in recorder.steps if ctx.name == "inner" and ctx.args in ((1,), (2,))
    ]
    assert len(inner_spawns) == 2
    for ctx in inner_spawns:
        assert ctx.parent_id == outer_id
        assert ctx.all_parent_ids == outer_spawn.all_parent_ids + (outer_id,)
        assert ctx.root_id == outer_spawn.root_id
        assert ctx.parent_action_event is outer_spawn.parent_action_event


@pytest.mark.asyncio
async def test_to_generator_helpers_support_yield_from(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    async def fetch(key: str) -> str:
        return key.upper()

    fetch_gen = to_generator_function(fetch)

    @flow
    def composed() -> Generator[Any, Any, str]:
        a = yield from fetch_gen("a")
        b = yield from to_generator(fetch("b"))
        return a + b

    assert fetch_gen.__name__ == "fetch"
    assert await spawn(composed) == "AB"


@pytest.mark.asyncio
async def test_flow_future_done_callback_receives_flow_future(
    spawn: Callable[..., FlowFuture[Any]],
) -> None:
    @flow
    def quick() -> Generator[Any, Any, str]:
        value = yield resolved("ok")
        return value

    calls: list[FlowFuture[Any]] = []
    future = spawn(quick)
    future.add_done_callback(calls.append)
    await future
    await asyncio.sleep(0)

    assert calls == [future]
    assert future.exception() is None
    assert "quick" in repr(future)
