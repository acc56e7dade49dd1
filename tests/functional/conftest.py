import asyncio
import pytest
import pytest_asyncio
from typing import Any
from collections.abc import Callable

from justflow import FlowFuture, FlowSpawner, run_action


@pytest.fixture
def spawn() -> Callable[..., FlowFuture[Any]]:
    """Spawn a flow from inside a fresh root action."""

    def _spawn(spawner: FlowSpawner[Any], *args: Any, **kwargs: Any) -> FlowFuture[Any]:
        return run_action(lambda: spawner(*args, **kwargs), name="test_action")

    return _spawn


@pytest_asyncio.fixture
async def loop_errors() -> list[BaseException]:
    """Collect exceptions that escape into the running loop's exception handler."""
    errors: list[BaseException] = []

    def handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is not None:
            errors.append(exc)

    asyncio.get_running_loop().set_exception_handler(handler)
    return errors
