"""In-memory stand-ins for processes, clocks, and remote services."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anyio
import anyio.lowlevel

from cloudvm.cloud import CloudVmController, VmStatus
from cloudvm.exceptions import AuthError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

    from cloudvm.config import CloudVmConfig

READY_LINE = "Listening on port [8080].\n"


class FakeClock:
    """Advanceable clock whose sleep returns immediately."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await anyio.lowlevel.checkpoint()


class FakeProcess:
    """Tunnel subprocess double backed by memory object streams."""

    def __init__(self, pid: int, *, exit_on_terminate: bool = True) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        self._exit_on_terminate = exit_on_terminate
        self._stdout_send: MemoryObjectSendStream[bytes]
        self.stdout: MemoryObjectReceiveStream[bytes]
        self._stdout_send, self.stdout = anyio.create_memory_object_stream[bytes](100)
        self._stderr_send: MemoryObjectSendStream[bytes]
        self.stderr: MemoryObjectReceiveStream[bytes]
        self._stderr_send, self.stderr = anyio.create_memory_object_stream[bytes](100)
        self._exited = anyio.Event()

    def emit_stderr(self, text: str) -> None:
        self._stderr_send.send_nowait(text.encode())

    def emit_stdout(self, text: str) -> None:
        self._stdout_send.send_nowait(text.encode())

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self._stdout_send.close()
        self._stderr_send.close()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if self._exit_on_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeSpawner:
    """Process factory recording every spawned command."""

    def __init__(self, *, ready: bool = True, exit_on_terminate: bool = True) -> None:
        self.ready = ready
        self.exit_on_terminate = exit_on_terminate
        self.error: OSError | None = None
        self.gate: anyio.Event | None = None
        self.commands: list[tuple[str, ...]] = []
        self.processes: list[FakeProcess] = []

    async def __call__(self, command: Sequence[str]) -> FakeProcess:
        self.commands.append(tuple(command))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        process = FakeProcess(
            pid=1000 + len(self.processes),
            exit_on_terminate=self.exit_on_terminate,
        )
        self.processes.append(process)
        if self.ready:
            process.emit_stderr(READY_LINE)
        return process


class FakeCompute:
    """Compute API double that replays a scripted status sequence."""

    def __init__(
        self,
        status: VmStatus = VmStatus.OFF,
        *,
        statuses: Sequence[VmStatus] = (),
    ) -> None:
        self.status = status
        self.statuses = list(statuses)
        self.calls: list[str] = []
        self.tokens: list[str] = []
        self.error: Exception | None = None
        self.gate: anyio.Event | None = None
        self.after_start: VmStatus | None = VmStatus.RUNNING
        self.after_stop: VmStatus | None = VmStatus.OFF

    async def start(self, config: CloudVmConfig, token: str) -> None:
        self.calls.append("start")
        self.tokens.append(token)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.after_start is not None:
            self.statuses.append(self.after_start)

    async def stop(self, config: CloudVmConfig, token: str) -> None:
        self.calls.append("stop")
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        if self.after_stop is not None:
            self.statuses.append(self.after_stop)

    async def get_status(self, config: CloudVmConfig, token: str) -> VmStatus:
        self.calls.append("get_status")
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        if self.statuses:
            self.status = self.statuses.pop(0)
        return self.status


class FakeCredentials:
    """Credential source returning a fixed token."""

    def __init__(self, token: str = "fresh-token") -> None:
        self.token = token
        self.calls = 0
        self.error: str | None = None
        self.is_refreshing = False

    async def refresh(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise AuthError(self.error)
        return self.token


class RecordingSink:
    """State sink keeping everything it receives."""

    def __init__(self) -> None:
        self.states: list[object] = []
        self.lines: list[tuple[str, int, str]] = []

    async def write_state(self, state: object) -> None:
        self.states.append(state)

    async def write_line(self, stream: str, pid: int, line: str) -> None:
        self.lines.append((stream, pid, line))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to other tasks until `predicate` holds."""
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.001)


async def always_reachable(_port: int) -> bool:
    return True


async def never_reachable(_port: int) -> bool:
    return False


@dataclass
class Rig:
    """A controller together with the doubles it was built from."""

    controller: CloudVmController
    compute: FakeCompute
    credentials: FakeCredentials
    spawner: FakeSpawner
    clock: FakeClock
    sink: RecordingSink


RigFactory = Callable[..., AbstractAsyncContextManager[Rig]]
