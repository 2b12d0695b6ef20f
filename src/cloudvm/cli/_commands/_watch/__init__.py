# pyright: reportUnusedCallResult=false
"""Watch command: poll the instance and print every state change."""

from typing import Annotated

from cyclopts import Parameter

from cloudvm.cli._context import CLIContext
from cloudvm.cloud import DEFAULT_POLL_INTERVAL


def watch(
    *,
    interval: Annotated[
        float,
        Parameter(help="Seconds between status polls while healthy."),
    ] = DEFAULT_POLL_INTERVAL,
) -> None:
    """Poll the instance and print every state change until Ctrl-C.

    Edits to the configuration file are picked up while watching and
    trigger an immediate refresh.
    """
    import anyio
    from rich.console import Console

    from .._shared import ExitCode, exit_with_error
    from ._runner import run_watch

    if interval <= 0:
        exit_with_error("--interval must be positive", ExitCode.CONFIG_ERROR)

    ctx = CLIContext.get_current()
    console = Console()
    anyio.run(run_watch, ctx, console, interval)
