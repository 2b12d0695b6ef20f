# pyright: reportExplicitAny=false
"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes
- JSON formatting and state printing
- A state sink that writes JSON lines
- Console utilities for error handling
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any, Literal, Never, final

from cloudvm.exceptions import (
    ApiError,
    AuthError,
    CloudVmError,
    ConfigError,
    NotConfiguredError,
    OperationTimeoutError,
    TunnelProcessError,
)

if TYPE_CHECKING:
    from rich.console import Console

    from cloudvm.cloud import CloudVmState

# Type alias for formattable data - uses Any to match library signatures
FormattableData = dict[str, Any]

__all__ = [
    "ExitCode",
    "FormattableData",
    "JsonStateSink",
    "exit_code_for",
    "exit_with_error",
    "format_json",
    "get_error_console",
    "print_state",
]


class ExitCode(IntEnum):
    """Standard exit codes for cloudvm CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    NOT_CONFIGURED = 2
    AUTH_ERROR = 3
    API_ERROR = 4
    TIMEOUT = 5
    TUNNEL_ERROR = 6
    INTERNAL_ERROR = 7


_EXIT_CODES: tuple[tuple[type[CloudVmError], ExitCode], ...] = (
    (ConfigError, ExitCode.CONFIG_ERROR),
    (NotConfiguredError, ExitCode.NOT_CONFIGURED),
    (AuthError, ExitCode.AUTH_ERROR),
    (ApiError, ExitCode.API_ERROR),
    (OperationTimeoutError, ExitCode.TIMEOUT),
    (TunnelProcessError, ExitCode.TUNNEL_ERROR),
)


def exit_code_for(error: CloudVmError) -> ExitCode:
    """Map a cloudvm error to its exit code.

    Args:
        error: The error to map.

    Returns:
        The exit code for the error's category.
    """
    for error_type, code in _EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCode.INTERNAL_ERROR


def format_json(data: FormattableData, *, indent: bool = True) -> str:
    """Format data as JSON.

    Args:
        data: Dictionary to format as JSON.
        indent: Whether to pretty-print with indentation.

    Returns:
        JSON-formatted string representation.
    """
    import orjson  # noqa: PLC0415

    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options).decode("utf-8")


def print_state(state: CloudVmState, console: Console, *, json_output: bool) -> None:
    """Print a state snapshot as JSON or as a short summary table.

    Args:
        state: The snapshot to print.
        console: Console to print to.
        json_output: Print JSON instead of formatted text.
    """
    if json_output:
        console.print_json(format_json(state.to_dict()))
        return

    from rich.table import Table  # noqa: PLC0415
    from rich.text import Text  # noqa: PLC0415

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Status", state.status.value)
    table.add_row("Tunnel", state.tunnel_status.value)
    if state.server_id:
        table.add_row("Server", state.server_id)
    if state.remote_view_url:
        table.add_row("View URL", state.remote_view_url)
    if state.last_checked:
        table.add_row("Checked", state.last_checked)
    if state.error:
        table.add_row("Error", Text(state.error, style="red"))
    console.print(table)


@final
class JsonStateSink:
    """State sink that prints one compact JSON object per event."""

    __slots__ = ("_console",)

    def __init__(self, console: Console) -> None:
        """Initialize the sink.

        Args:
            console: Console the JSON lines are written to.
        """
        self._console = console

    async def write_state(self, state: CloudVmState) -> None:
        """Write a state snapshot as a JSON line."""
        line = format_json({"event": "state-changed", "state": state.to_dict()}, indent=False)
        self._console.out(line, highlight=False)

    async def write_line(
        self,
        stream: Literal["stdout", "stderr"],
        pid: int,
        line: str,
    ) -> None:
        """Write a tunnel output line as a JSON line."""
        data = {"event": "tunnel-output", "stream": stream, "pid": pid, "line": line}
        self._console.out(format_json(data, indent=False), highlight=False)


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr.

    Returns:
        Console instance writing to stderr.
    """
    from rich.console import Console  # noqa: PLC0415

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use (defaults to INTERNAL_ERROR).
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    from rich.markup import escape  # noqa: PLC0415

    console.print(f"[red]Error:[/red] {escape(message)}")
    raise SystemExit(code)
