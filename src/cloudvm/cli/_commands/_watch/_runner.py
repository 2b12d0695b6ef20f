"""Async runner for the watch command."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from .._runner import create_controller, create_sink, wait_for_interrupt

if TYPE_CHECKING:
    from rich.console import Console

    from cloudvm.cli._context import CLIContext


async def run_watch(ctx: CLIContext, console: Console, interval: float) -> None:
    """Poll and watch the config file until interrupted.

    Args:
        ctx: The current CLI context.
        console: Console states are printed to.
        interval: Nominal seconds between polls.
    """
    manager = ctx.config_manager

    async with create_controller(ctx, [create_sink(ctx, console)]) as controller:
        _ = await controller.get_state()
        controller.start_polling(interval)

        async with anyio.create_task_group() as tg:
            tg.start_soon(manager.watch)
            await wait_for_interrupt()
            tg.cancel_scope.cancel()
