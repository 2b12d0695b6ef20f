# pyright: reportUnusedCallResult=false
"""Instance lifecycle commands: status, start, and stop."""

from typing import Annotated

from cyclopts import Parameter

from cloudvm.cli._context import CLIContext
from cloudvm.cloud import CloudVmController, CloudVmState

from .._runner import run_operation


async def _get_state(controller: CloudVmController) -> CloudVmState:
    return await controller.get_state()


async def _start_vm(controller: CloudVmController) -> CloudVmState:
    return await controller.start_vm()


async def _stop_vm(controller: CloudVmController) -> CloudVmState:
    return await controller.stop_vm()


def status() -> None:
    """Show the instance's power state and the tunnel state."""
    run_operation(CLIContext.get_current(), _get_state)


def start(
    *,
    detach: Annotated[
        bool,
        Parameter(help="Exit once the instance runs instead of holding the tunnel open."),
    ] = False,
) -> None:
    """Power the instance on, wait until it runs, and open the tunnel.

    By default the command stays attached and keeps the tunnel open until
    interrupted with Ctrl-C.
    """
    run_operation(CLIContext.get_current(), _start_vm, attach=not detach)


def stop() -> None:
    """Close the tunnel and power the instance off."""
    run_operation(CLIContext.get_current(), _stop_vm)
