"""Unit tests for the shared CLI utilities module."""

from io import StringIO

import orjson
import pytest
from rich.console import Console

from cloudvm.cli._commands._shared import (
    ExitCode,
    JsonStateSink,
    exit_code_for,
    exit_with_error,
    format_json,
    print_state,
)
from cloudvm.cloud import CloudVmState, TunnelStatus, VmStatus
from cloudvm.exceptions import (
    ApiError,
    AuthError,
    CloudVmError,
    ConfigLoadError,
    NotConfiguredError,
    OperationTimeoutError,
    TunnelProcessError,
)

RUNNING = CloudVmState(
    status=VmStatus.RUNNING,
    server_id="desk-1",
    remote_view_url="http://localhost:8080/novnc/vnc.html",
    tunnel_status=TunnelStatus.RUNNING,
)


def _console() -> tuple[Console, StringIO]:
    buffer = StringIO()
    return Console(file=buffer, width=200, force_terminal=False), buffer


class TestExitCode:
    def test_exit_code_values_are_unique(self) -> None:
        values = [code.value for code in ExitCode]
        assert len(values) == len(set(values))

    def test_success_is_zero(self) -> None:
        assert ExitCode.SUCCESS == 0

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ConfigLoadError("bad toml"), ExitCode.CONFIG_ERROR),
            (NotConfiguredError("Cloud VM not configured"), ExitCode.NOT_CONFIGURED),
            (AuthError("expired"), ExitCode.AUTH_ERROR),
            (ApiError("HTTP 500"), ExitCode.API_ERROR),
            (OperationTimeoutError("slow"), ExitCode.TIMEOUT),
            (TunnelProcessError("exited"), ExitCode.TUNNEL_ERROR),
            (CloudVmError("other"), ExitCode.INTERNAL_ERROR),
        ],
    )
    def test_exit_code_for(self, error: CloudVmError, expected: ExitCode) -> None:
        assert exit_code_for(error) == expected


class TestFormatJson:
    def test_format_empty_dict(self) -> None:
        assert format_json({}) == "{}"

    def test_compact(self) -> None:
        assert format_json({"a": 1, "b": None}, indent=False) == '{"a":1,"b":null}'

    def test_indented(self) -> None:
        assert "\n" in format_json({"a": {"b": 1}})


class TestPrintState:
    def test_table_lists_fields(self) -> None:
        console, buffer = _console()

        print_state(RUNNING, console, json_output=False)

        output = buffer.getvalue()
        assert "running" in output
        assert "desk-1" in output
        assert "http://localhost:8080/novnc/vnc.html" in output

    def test_error_with_brackets_is_not_markup(self) -> None:
        console, buffer = _console()
        state = CloudVmState(status=VmStatus.UNKNOWN, error="HTTP 403: [forbidden]")

        print_state(state, console, json_output=False)

        assert "HTTP 403: [forbidden]" in buffer.getvalue()

    def test_json(self) -> None:
        console, buffer = _console()

        print_state(RUNNING, console, json_output=True)

        assert orjson.loads(buffer.getvalue()) == RUNNING.to_dict()


class TestJsonStateSink:
    @pytest.mark.anyio
    async def test_writes_state_and_output_lines(self) -> None:
        console, buffer = _console()
        sink = JsonStateSink(console)

        await sink.write_state(RUNNING)
        await sink.write_line("stderr", 4242, "Listening on port [8080].")

        first, second = (orjson.loads(line) for line in buffer.getvalue().splitlines())
        assert first == {"event": "state-changed", "state": RUNNING.to_dict()}
        assert second == {
            "event": "tunnel-output",
            "stream": "stderr",
            "pid": 4242,
            "line": "Listening on port [8080].",
        }


class TestExitWithError:
    def test_prints_and_exits(self) -> None:
        console, buffer = _console()

        with pytest.raises(SystemExit) as exc_info:
            exit_with_error("No server ID [configured]", ExitCode.NOT_CONFIGURED, console=console)

        assert exc_info.value.code == ExitCode.NOT_CONFIGURED
        assert "Error: No server ID [configured]" in buffer.getvalue()
