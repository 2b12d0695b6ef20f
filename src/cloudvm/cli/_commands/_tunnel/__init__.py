# pyright: reportUnusedCallResult=false
"""Tunnel commands."""

from typing import Annotated

from cyclopts import App, Parameter

from cloudvm.cli._context import CLIContext
from cloudvm.cloud import CloudVmController, CloudVmState

from .._runner import run_operation
from .._shared import ExitCode, exit_with_error, format_json

app = App(name="tunnel", help="Open or close the tunnel to the instance", help_on_error=True)

DEFAULT_SERVER_URL = "http://127.0.0.1:6280"


async def _start_tunnel(controller: CloudVmController) -> CloudVmState:
    _ = await controller.start_tunnel()
    return await controller.get_state()


@app.command(name="start")
def start() -> None:
    """Open the tunnel to a running instance and hold it open until Ctrl-C."""
    run_operation(CLIContext.get_current(), _start_tunnel, attach=True)


@app.command(name="stop")
def stop(
    *,
    server: Annotated[
        str,
        Parameter(help="Base URL of a running `cloudvm serve` control API."),
    ] = DEFAULT_SERVER_URL,
) -> None:
    """Close the tunnel held open by a running `cloudvm serve` process."""
    import httpx  # noqa: PLC0415
    from rich.console import Console  # noqa: PLC0415

    ctx = CLIContext.get_current()
    url = f"{server.rstrip('/')}/cloud/tunnel/stop"
    try:
        response = httpx.post(url, timeout=10.0)
    except httpx.HTTPError as e:
        exit_with_error(f"Could not reach {server}: {e}", ExitCode.API_ERROR)

    try:
        payload = response.json()
    except ValueError:
        msg = f"Unexpected response from {server}: HTTP {response.status_code}"
        exit_with_error(msg, ExitCode.API_ERROR)

    if not payload.get("success"):
        exit_with_error(str(payload.get("error")), ExitCode.TUNNEL_ERROR)

    console = Console()
    if ctx.json_output:
        console.print_json(format_json(payload["data"]))
    else:
        data = payload["data"]
        console.print(f"Tunnel {data['tunnel_status']} (instance {data['status']})")
