from io import StringIO

import pytest
from rich.console import Console

from cloudvm.cloud import CloudVmState, ConsoleStateSink, TunnelStatus, VmStatus

pytestmark = pytest.mark.anyio


@pytest.fixture
def buffer() -> StringIO:
    return StringIO()


@pytest.fixture
def console(buffer: StringIO) -> Console:
    return Console(file=buffer, force_terminal=False, width=200)


class TestWriteState:
    async def test_running_state_shows_url(self, console: Console, buffer: StringIO) -> None:
        sink = ConsoleStateSink(console)
        state = CloudVmState(
            status=VmStatus.RUNNING,
            server_id="desk-1",
            remote_view_url="http://localhost:8080/novnc/vnc.html",
            tunnel_status=TunnelStatus.RUNNING,
        )

        await sink.write_state(state)

        assert buffer.getvalue() == (
            "[cloud] RUNNING tunnel=running (desk-1) http://localhost:8080/novnc/vnc.html\n"
        )

    async def test_error_replaces_url(self, console: Console, buffer: StringIO) -> None:
        sink = ConsoleStateSink(console)
        state = CloudVmState(
            status=VmStatus.UNKNOWN,
            remote_view_url="http://localhost:8080/",
            error="GCP API error: 503 - [unavailable]",
        )

        await sink.write_state(state)

        assert buffer.getvalue() == (
            "[cloud] UNKNOWN tunnel=off - GCP API error: 503 - [unavailable]\n"
        )


class TestWriteLine:
    async def test_prefixes_pid(self, console: Console, buffer: StringIO) -> None:
        sink = ConsoleStateSink(console)

        await sink.write_line("stderr", 4242, "Listening on port [8080].")

        assert buffer.getvalue() == "[tunnel:4242] Listening on port [8080].\n"

    async def test_output_can_be_hidden(self, console: Console, buffer: StringIO) -> None:
        sink = ConsoleStateSink(console, show_output=False)

        await sink.write_line("stdout", 4242, "hello")

        assert buffer.getvalue() == ""
