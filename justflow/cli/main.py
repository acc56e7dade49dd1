"""Main CLI entry point for justflow commands."""

import asyncio
import importlib
import inspect
import logging
import os
import sys
from typing import Any

import click

from justflow.actions import run_action
from justflow.cli.formatting import format_step, parse_argument, step_to_json
from justflow.flow import FlowSpawner, flow
from justflow.testing import FlowRecorder
from justflow.types import FlowError, InvocationContext


def load_spawner(target: str) -> FlowSpawner[Any]:
    """Resolve ``module:attr`` to a flow spawner.

    Plain generator functions are wrapped with :func:`justflow.flow`.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(
            f"Expected 'module:attribute', got {target!r}", param_hint="TARGET"
        )
    # Console scripts do not put the working directory on sys.path.
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(
            f"Cannot import module {module_name!r}: {e}", param_hint="TARGET"
        ) from e

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise click.BadParameter(
                f"Module {module_name!r} has no attribute {attr!r}",
                param_hint="TARGET",
            ) from e

    if isinstance(obj, FlowSpawner):
        return obj
    if inspect.isgeneratorfunction(obj):
        return flow(obj)  # type: ignore[no-any-return]
    raise click.BadParameter(
        f"{target!r} is neither a flow nor a generator function",
        param_hint="TARGET",
    )


async def run_traced(
    spawner: FlowSpawner[Any], args: list[Any], on_step: Any
) -> Any:
    """Spawn ``spawner`` inside a root action and wait for its result.

    Engine defects raised from loop callbacks (a non-awaitable yielded after
    the first suspension) end the run instead of leaving it waiting forever.
    """
    loop = asyncio.get_running_loop()
    defect: asyncio.Future[Any] = loop.create_future()

    def handle_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if isinstance(exc, FlowError) and not defect.done():
            defect.set_exception(exc)
            return
        loop.default_exception_handler(context)

    loop.set_exception_handler(handle_exception)
    traced = spawner.with_middleware(FlowRecorder(on_step=on_step))
    future = run_action(lambda: traced(*args), name="justflow.cli")
    done, _ = await asyncio.wait(
        {future.future, defect}, return_when=asyncio.FIRST_COMPLETED
    )
    return done.pop().result()


@click.group()
@click.version_option()
def cli() -> None:
    """justflow - run and trace generator flows."""
    pass


@cli.command("run")
@click.argument("target")
@click.argument("args", nargs=-1)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Emit one JSON object per step",
)
@click.option(
    "--level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Log level for the justflow logger",
)
def run_command_cli(target: str, args: tuple[str, ...], as_json: bool, level: str) -> None:
    """Run TARGET (module:attribute) with ARGS and trace each step.

    Arguments are parsed as JSON when possible, otherwise passed as strings.
    """
    logging.basicConfig(level=level.upper())
    spawner = load_spawner(target)

    def on_step(ctx: InvocationContext) -> None:
        if as_json:
            click.echo(step_to_json(ctx))
            return
        line, color = format_step(ctx)
        click.secho(line, fg=color)

    try:
        result = asyncio.run(
            run_traced(spawner, [parse_argument(a) for a in args], on_step)
        )
    except (Exception, asyncio.CancelledError) as e:
        click.secho(f"Flow failed: {e!r}", fg="red", err=True)
        raise SystemExit(1)

    click.echo(f"Result: {result!r}")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
