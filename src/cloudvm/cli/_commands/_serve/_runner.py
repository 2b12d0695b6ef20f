"""Async runner for the serve command.

This module provides the async entry point that runs the controller, the
configuration watcher, and the uvicorn control server together using anyio.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from cloudvm.cloud import ConsoleStateSink

from .._runner import create_controller

if TYPE_CHECKING:
    from collections.abc import Callable

    import uvicorn
    from fastapi import FastAPI

    from cloudvm.cli._context import CLIContext
    from cloudvm.cloud import CloudVmController


async def run_serve(
    ctx: CLIContext,
    create_app: Callable[[CloudVmController], FastAPI],
    build_server: Callable[[FastAPI], uvicorn.Server],
    poll_interval: float,
) -> None:
    """Serve the control API until the server shuts down.

    Args:
        ctx: The current CLI context.
        create_app: Factory for the control application.
        build_server: Factory wrapping the application in a uvicorn server.
        poll_interval: Seconds between background polls. 0 disables polling.
    """
    manager = ctx.config_manager

    async with create_controller(ctx, [ConsoleStateSink(show_output=ctx.verbose)]) as controller:
        server = build_server(create_app(controller))

        async with anyio.create_task_group() as tg:
            tg.start_soon(manager.watch)

            _ = await controller.get_state()
            if poll_interval > 0:
                controller.start_polling(poll_interval)

            # Blocks until uvicorn handles SIGINT/SIGTERM
            await server.serve()

            tg.cancel_scope.cancel()
