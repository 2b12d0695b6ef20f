# pyright: reportUnusedCallResult=false
"""cloudvm control API server command."""

from typing import Annotated, Literal

from cyclopts import Parameter

from cloudvm.cli._context import CLIContext

LogLevel = Literal["critical", "error", "warning", "info", "debug", "trace"]

DEFAULT_PORT = 6280


def serve(
    *,
    host: Annotated[
        str,
        Parameter(help="Bind socket to this host."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        Parameter(help="Bind socket to this port."),
    ] = DEFAULT_PORT,
    poll_interval: Annotated[
        float,
        Parameter(help="Seconds between background status polls. 0 disables polling."),
    ] = 30.0,
    log_level: Annotated[
        LogLevel,
        Parameter(help="Uvicorn log level."),
    ] = "warning",
    access_log: Annotated[
        bool,
        Parameter(help="Enable access log."),
    ] = False,
) -> None:
    """Run the control API server, owning one controller until shutdown.

    The server exposes the controller under ``/cloud``. Stopping the server
    stops polling and closes the tunnel.
    """
    import anyio
    import uvicorn

    from ._app import create_control_app
    from ._runner import run_serve

    ctx = CLIContext.get_current()
    print(f"Starting cloudvm control API on {host}:{port}")  # noqa: T201

    def build_server(app: object) -> uvicorn.Server:
        config = uvicorn.Config(
            app=app,  # pyright: ignore[reportArgumentType]
            host=host,
            port=port,
            log_level=log_level,
            access_log=access_log,
        )
        return uvicorn.Server(config)

    anyio.run(run_serve, ctx, create_control_app, build_server, poll_interval)
