"""State sink implementations for the cloud VM controller.

This module provides concrete implementations of the StateSink protocol
for displaying state snapshots and tunnel output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from ._models import TunnelStatus, VmStatus

if TYPE_CHECKING:
    from ._models import CloudVmState


@final
class ConsoleStateSink:
    """State sink that writes to the terminal with color coding.

    Formats states as `[cloud] STATUS tunnel=STATUS` followed by the view URL
    or the error, and tunnel output as `[tunnel:pid] line`:
    - stdout: Default styling
    - stderr: Dim red styling
    """

    __slots__ = (
        "_console",
        "_show_output",
        "_status_styles",
        "_stderr_style",
        "_stdout_style",
        "_tunnel_styles",
    )

    def __init__(self, console: Console | None = None, *, show_output: bool = True) -> None:
        """Initialize the state sink.

        Args:
            console: Rich Console instance for output. If None, creates a new one.
            show_output: Whether to print tunnel subprocess output.
        """
        self._console = console or Console()
        self._show_output = show_output
        self._stdout_style = Style()
        self._stderr_style = Style(color="red", dim=True)
        self._status_styles: dict[VmStatus, Style] = {
            VmStatus.RUNNING: Style(color="green", bold=True),
            VmStatus.STARTING: Style(color="cyan"),
            VmStatus.INITIALIZING: Style(color="cyan"),
            VmStatus.STOPPING: Style(color="yellow"),
            VmStatus.OFF: Style(color="yellow", dim=True),
            VmStatus.UNKNOWN: Style(color="red"),
            VmStatus.NOT_PROVISIONED: Style(color="magenta", dim=True),
        }
        self._tunnel_styles: dict[TunnelStatus, Style] = {
            TunnelStatus.RUNNING: Style(color="green"),
            TunnelStatus.STARTING: Style(color="cyan"),
            TunnelStatus.OFF: Style(dim=True),
            TunnelStatus.ERROR: Style(color="red", bold=True),
        }

    async def write_state(self, state: CloudVmState) -> None:
        """Write a state snapshot as a single line.

        Args:
            state: The snapshot that was just published.
        """
        text = Text()
        _ = text.append("[cloud]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(state.status.value.upper(), style=self._status_styles[state.status])
        _ = text.append(" tunnel=", style=Style(dim=True))
        _ = text.append(
            state.tunnel_status.value,
            style=self._tunnel_styles[state.tunnel_status],
        )

        if state.server_id:
            _ = text.append(f" ({state.server_id})", style=Style(dim=True))

        if state.error:
            _ = text.append(f" - {state.error}", style=Style(color="red"))
        elif state.remote_view_url:
            _ = text.append(f" {state.remote_view_url}", style=Style(underline=True))

        self._console.print(text)

    async def write_line(
        self,
        stream: Literal["stdout", "stderr"],
        pid: int,
        line: str,
    ) -> None:
        """Write a line of tunnel output with prefix.

        Args:
            stream: Which output stream the line came from.
            pid: Process ID of the tunnel subprocess.
            line: The output line (without trailing newline).
        """
        if not self._show_output:
            return

        style = self._stderr_style if stream == "stderr" else self._stdout_style

        text = Text()
        _ = text.append(f"[tunnel:{pid}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(line, style=style)

        self._console.print(text)
