"""Async helpers shared by the controller-driving commands.

This module provides the plumbing every command needs to run one
controller operation: building the controller from the CLI context,
choosing state sinks, translating errors to exit codes, and waiting for
Ctrl-C while a tunnel is held open.
"""

from __future__ import annotations

import signal
from functools import partial
from typing import TYPE_CHECKING

import anyio
from rich.console import Console

from cloudvm.cloud import CloudVmController, ConsoleStateSink
from cloudvm.exceptions import CloudVmError

from ._shared import JsonStateSink, exit_code_for, exit_with_error, print_state

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cloudvm.cloud import CloudVmState, StateSink
    from cloudvm.cli._context import CLIContext

    Operation = Callable[[CloudVmController], Awaitable[CloudVmState]]


def create_sink(ctx: CLIContext, console: Console) -> StateSink:
    """Create the sink that streams states and tunnel output.

    Args:
        ctx: The current CLI context.
        console: Console to stream to.

    Returns:
        A JSON-lines sink with ``--json``, otherwise a formatted console sink.
    """
    if ctx.json_output:
        return JsonStateSink(console)
    return ConsoleStateSink(console, show_output=ctx.verbose)


def create_controller(
    ctx: CLIContext,
    sinks: list[StateSink] | None = None,
) -> CloudVmController:
    """Build a controller wired to the CLI's config manager and logger.

    Args:
        ctx: The current CLI context.
        sinks: State sinks to register.

    Returns:
        A controller that still has to be entered.
    """
    return CloudVmController(
        ctx.config_manager,
        sinks=sinks or [],
        logger=ctx.logger,
    )


async def wait_for_interrupt() -> None:
    """Block until SIGINT or SIGTERM is received."""
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for _ in signals:
            return


async def _run_operation(
    ctx: CLIContext,
    operation: Operation,
    console: Console,
    *,
    attach: bool,
) -> CloudVmState:
    sinks = [create_sink(ctx, console)] if attach else []
    async with create_controller(ctx, sinks) as controller:
        state = await operation(controller)
        if attach:
            if not ctx.json_output:
                print_state(state, console, json_output=False)
                console.print("[dim]Holding the tunnel open. Press Ctrl-C to close it.[/dim]")
            await wait_for_interrupt()
        return state


def run_operation(
    ctx: CLIContext,
    operation: Operation,
    *,
    attach: bool = False,
) -> None:
    """Run one controller operation and print its resulting state.

    Args:
        ctx: The current CLI context.
        operation: Coroutine function receiving the entered controller.
        attach: Stream states and keep the process (and tunnel) alive until
            interrupted.
    """
    console = Console()
    try:
        state = anyio.run(partial(_run_operation, ctx, operation, console, attach=attach))
    except CloudVmError as e:
        exit_with_error(str(e), exit_code_for(e))

    if ctx.logger is not None:
        ctx.logger.info("cli_operation_finished", status=state.status, error=state.error)

    if not attach:
        print_state(state, console, json_output=ctx.json_output)
