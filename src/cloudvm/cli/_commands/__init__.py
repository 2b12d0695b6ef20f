"""cloudvm CLI commands."""
# pyright: reportUnusedCallResult=false

from __future__ import annotations

from typing import TYPE_CHECKING

from ._serve import serve
from ._shared import (
    ExitCode,
    FormattableData,
    JsonStateSink,
    exit_code_for,
    exit_with_error,
    format_json,
    get_error_console,
    print_state,
)
from ._tunnel import app as tunnel_app
from ._vm import start, status, stop
from ._watch import watch

if TYPE_CHECKING:
    from cyclopts import App

__all__ = [
    "ExitCode",
    "FormattableData",
    "JsonStateSink",
    "exit_code_for",
    "exit_with_error",
    "format_json",
    "get_error_console",
    "print_state",
    "serve",
    "start",
    "status",
    "stop",
    "tunnel_app",
    "watch",
]


def register_commands(app: App) -> None:
    app.command(status)
    app.command(start)
    app.command(stop)
    app.command(tunnel_app)
    app.command(watch)
    app.command(serve)
