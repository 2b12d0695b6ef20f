"""Supervisor for the tunnel subprocess.

This module provides the TunnelSupervisor class that spawns the provider's
tunnel command, detects readiness from its stderr, and reacts to its exit,
including a single automatic reconnect after an unexpected death.
"""

from __future__ import annotations

import contextlib
import functools
import subprocess
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, final

import anyio
import anyio.abc
import structlog
from anyio.streams.text import TextReceiveStream

from cloudvm.cloud._models import TunnelStatus
from cloudvm.exceptions import CloudVmError, OperationTimeoutError, TunnelProcessError

from ._models import TunnelSettings
from ._probe import probe_tunnel, wait_for_tunnel

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from anyio.abc import ByteReceiveStream
    from structlog.typing import FilteringBoundLogger

    from ._models import TunnelProcess, TunnelTarget

    SpawnFunc = Callable[[Sequence[str]], Awaitable[TunnelProcess]]
    ProbeFunc = Callable[[int], Awaitable[bool]]
    SleepFunc = Callable[[float], Awaitable[None]]
    StatusCallback = Callable[[TunnelStatus], Awaitable[None]]
    OutputCallback = Callable[[Literal["stdout", "stderr"], int, str], Awaitable[None]]


async def open_tunnel_process(command: Sequence[str]) -> TunnelProcess:
    """Spawn the tunnel command with piped output and no stdin."""
    return await anyio.open_process(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


@dataclass(slots=True)
class _Launch:
    """Outcome of one spawned process, shared with its watcher task."""

    auto: bool = False
    ready: anyio.Event = field(default_factory=anyio.Event)
    became_ready: bool = False
    exit_code: int | None = None


@final
class TunnelSupervisor:
    """Owns at most one tunnel subprocess and tracks its lifecycle.

    State machine: ``off -> starting -> running``; ``running -> off`` on a
    graceful stop or an unexpected exit; ``starting|running -> error`` on
    spawn failure, early exit, or readiness timeout.

    Every spawned process gets its own watcher task. Watchers compare their
    process with the currently tracked one before touching shared state, so
    a process discarded by `stop()` can still exit later without effect.
    Each `stop()` also bumps a generation counter; a start that was in
    flight when it happened discards whatever it spawned.

    An unexpected exit of a running tunnel schedules exactly one reconnect.
    If that reconnect fails, or the reconnected tunnel dies again, the
    status becomes ``error`` and no further attempt is made.
    """

    __slots__ = (
        "_generation",
        "_logger",
        "_on_output",
        "_on_status",
        "_probe",
        "_process",
        "_reconnect_scope",
        "_settings",
        "_sleep",
        "_spawn",
        "_status",
        "_target",
        "_task_group",
    )

    def __init__(  # noqa: PLR0913
        self,
        settings: TunnelSettings | None = None,
        *,
        on_status: StatusCallback | None = None,
        on_output: OutputCallback | None = None,
        spawn: SpawnFunc = open_tunnel_process,
        probe: ProbeFunc | None = None,
        sleep: SleepFunc = anyio.sleep,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            settings: Command and timing settings. Uses defaults if None.
            on_status: Awaited after every status transition.
            on_output: Awaited for every line the subprocess prints.
            spawn: Process factory.
            probe: Single-shot health probe of the local port. Uses
                `probe_tunnel` with the configured probe timeout if None.
            sleep: Sleep function for the reconnect delay and probe retries.
            logger: Structured logger. Uses the global structlog logger if None.
        """
        self._settings = settings or TunnelSettings()
        self._on_status = on_status
        self._on_output = on_output
        self._spawn = spawn
        self._probe: ProbeFunc = probe or functools.partial(
            probe_tunnel, timeout=self._settings.probe_timeout
        )
        self._sleep = sleep
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="tunnel"
        )
        self._status = TunnelStatus.OFF
        self._process: TunnelProcess | None = None
        self._target: TunnelTarget | None = None
        self._reconnect_scope: anyio.CancelScope | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._generation = 0

    def bind(self, task_group: anyio.abc.TaskGroup | None) -> None:
        """Attach the task group that hosts watcher and reconnect tasks.

        Args:
            task_group: The owning task group, or None to detach.
        """
        self._task_group = task_group

    def attach(
        self,
        *,
        on_status: StatusCallback | None = None,
        on_output: OutputCallback | None = None,
    ) -> None:
        """Replace the status and output callbacks.

        Args:
            on_status: Awaited after every status transition.
            on_output: Awaited for every line the subprocess prints.
        """
        self._on_status = on_status
        self._on_output = on_output

    @property
    def status(self) -> TunnelStatus:
        """Return the last known tunnel status."""
        return self._status

    @property
    def has_process(self) -> bool:
        """Return True if a subprocess is currently tracked."""
        return self._process is not None

    @property
    def pid(self) -> int | None:
        """Return the tracked subprocess ID, if any."""
        return self._process.pid if self._process is not None else None

    @property
    def reconnect_pending(self) -> bool:
        """Return True while an automatic reconnect is scheduled or starting."""
        return self._reconnect_scope is not None

    def is_running(self) -> bool:
        """Check if the tunnel is running with a live subprocess."""
        return self._status == TunnelStatus.RUNNING and self._process is not None

    async def start(self, target: TunnelTarget) -> None:
        """Start the tunnel and wait until it is ready.

        Does nothing if a tunnel is already running. Any other tracked
        subprocess is stopped first.

        Args:
            target: Instance endpoint to forward to.

        Raises:
            TunnelProcessError: If the process cannot be spawned or exits
                before becoming ready.
            OperationTimeoutError: If the ready marker does not appear in time.
        """
        if self.is_running():
            self._logger.info("tunnel_already_running", pid=self.pid)
            return
        await self._start(target, auto=False)

    def stop(self) -> None:
        """Stop the tunnel. Safe to call repeatedly.

        Cancels a pending reconnect, sends SIGTERM to the tracked
        subprocess, and forgets it. A start still waiting on its spawn
        terminates the new process instead of tracking it. The status
        becomes ``off`` without notifying `on_status`; the caller publishes
        the result.
        """
        self._generation += 1
        if self._reconnect_scope is not None:
            self._reconnect_scope.cancel()
            self._reconnect_scope = None

        process = self._process
        if process is not None:
            self._logger.info("tunnel_stopping", pid=process.pid)
            self._process = None
            self._terminate(process)

        self._status = TunnelStatus.OFF

    async def aclose(self) -> None:
        """Stop the tunnel and wait for the subprocess to exit.

        Sends SIGKILL if the subprocess outlives the shutdown timeout.
        """
        process = self._process
        self.stop()
        if process is None:
            return
        with anyio.CancelScope(shield=True):
            await self._reap(process)

    async def _start(self, target: TunnelTarget, *, auto: bool) -> None:
        task_group = self._require_task_group()

        if not auto:
            # Supersede a stale process, a pending reconnect, or a start in flight
            self.stop()
        generation = self._generation
        self._target = target
        await self._set_status(TunnelStatus.STARTING)
        if self._stopped_since(generation):
            return

        command = target.command(self._settings.executable)
        self._logger.info(
            "tunnel_starting",
            server_id=target.server_id,
            remote_port=target.remote_port,
            local_port=target.local_port,
            auto=auto,
        )

        try:
            process = await self._spawn(command)
        except OSError as e:
            self._logger.error("tunnel_spawn_failed", error=str(e))
            if self._stopped_since(generation):
                return
            await self._set_status(TunnelStatus.ERROR)
            msg = f"Tunnel process error: {e}"
            raise TunnelProcessError(msg, cause=e) from e

        if self._stopped_since(generation):
            self._terminate(process)
            return

        self._process = process
        launch = _Launch(auto=auto)
        task_group.start_soon(self._supervise, process, launch)

        with anyio.move_on_after(self._settings.ready_timeout) as scope:
            await launch.ready.wait()

        if self._stopped_since(generation):
            return

        if scope.cancelled_caught and not launch.ready.is_set():
            timeout = self._settings.ready_timeout
            self._logger.error("tunnel_ready_timeout", timeout=timeout)
            if self._process is process:
                self._process = None
                self._terminate(process)
                await self._set_status(TunnelStatus.ERROR)
            msg = f"Tunnel did not become ready within {timeout:g} seconds"
            raise OperationTimeoutError(msg, timeout=timeout)

        if not launch.became_ready:
            msg = f"Tunnel exited with code {launch.exit_code} before becoming ready"
            raise TunnelProcessError(msg, exit_code=launch.exit_code)

        try:
            await wait_for_tunnel(
                target.local_port,
                timeout=self._settings.health_timeout,
                interval=self._settings.health_interval,
                probe=self._probe,
                sleep=self._sleep,
            )
        except OperationTimeoutError as e:
            # The live process is the primary signal; the probe is advisory
            self._logger.warning("tunnel_health_check_failed", error=str(e))
        else:
            self._logger.info("tunnel_health_check_passed", port=target.local_port)

    def _stopped_since(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        self._logger.info("tunnel_start_superseded")
        return True

    async def _supervise(self, process: TunnelProcess, launch: _Launch) -> None:
        async with anyio.create_task_group() as tg:
            if process.stdout is not None:
                tg.start_soon(self._read_stream, process, launch, "stdout", process.stdout)
            if process.stderr is not None:
                tg.start_soon(self._read_stream, process, launch, "stderr", process.stderr)
            exit_code = await process.wait()

        await self._handle_exit(process, launch, exit_code)

    async def _read_stream(
        self,
        process: TunnelProcess,
        launch: _Launch,
        stream_name: Literal["stdout", "stderr"],
        stream: ByteReceiveStream,
    ) -> None:
        # Partial last line carried over to the next chunk
        pending = ""
        try:
            async for chunk in TextReceiveStream(stream):
                buffered = pending + chunk
                *lines, pending = buffered.split("\n")
                for line in lines:
                    await self._forward_line(process, stream_name, line)

                if (
                    stream_name == "stderr"
                    and not launch.became_ready
                    and self._settings.ready_marker in buffered
                ):
                    await self._mark_ready(process, launch)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass

        await self._forward_line(process, stream_name, pending)

    async def _forward_line(
        self,
        process: TunnelProcess,
        stream_name: Literal["stdout", "stderr"],
        raw_line: str,
    ) -> None:
        line = raw_line.rstrip()
        if not line:
            return
        self._logger.info("tunnel_output", stream=stream_name, line=line)
        await self._emit_output(stream_name, process.pid, line)

    async def _mark_ready(self, process: TunnelProcess, launch: _Launch) -> None:
        launch.became_ready = True
        if process is self._process:
            self._logger.info("tunnel_ready", pid=process.pid)
            await self._set_status(TunnelStatus.RUNNING)
        launch.ready.set()

    async def _handle_exit(
        self,
        process: TunnelProcess,
        launch: _Launch,
        exit_code: int,
    ) -> None:
        self._logger.info("tunnel_exited", pid=process.pid, exit_code=exit_code)

        if process is not self._process:
            self._logger.info("tunnel_stale_exit_ignored", pid=process.pid)
            if not launch.ready.is_set():
                launch.exit_code = exit_code
                launch.ready.set()
            return

        was_running = self._status == TunnelStatus.RUNNING
        self._process = None

        if not launch.ready.is_set():
            launch.exit_code = exit_code
            await self._set_status(TunnelStatus.ERROR)
            launch.ready.set()
            return

        if was_running and launch.auto:
            self._logger.error("tunnel_died_after_reconnect", exit_code=exit_code)
            await self._set_status(TunnelStatus.ERROR)
            return

        await self._set_status(TunnelStatus.OFF)
        if was_running:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        task_group = self._task_group
        if task_group is None or self._target is None:
            return

        delay = self._settings.reconnect_delay
        self._logger.warning("tunnel_died_unexpectedly", reconnect_in=delay)
        scope = anyio.CancelScope()
        self._reconnect_scope = scope
        task_group.start_soon(self._reconnect_after, scope, self._target)

    async def _reconnect_after(self, scope: anyio.CancelScope, target: TunnelTarget) -> None:
        # Registered until the restart settles; stop() may cancel the spawn
        try:
            with scope:
                await self._sleep(self._settings.reconnect_delay)
                try:
                    await self._start(target, auto=True)
                except CloudVmError as e:
                    self._logger.error("tunnel_reconnect_failed", error=str(e))
                    await self._set_status(TunnelStatus.ERROR)
                else:
                    self._logger.info("tunnel_reconnect_succeeded", pid=self.pid)
        finally:
            if self._reconnect_scope is scope:
                self._reconnect_scope = None

    def _terminate(self, process: TunnelProcess) -> None:
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        if self._task_group is not None:
            self._task_group.start_soon(self._reap, process)

    async def _reap(self, process: TunnelProcess) -> None:
        with anyio.move_on_after(self._settings.shutdown_timeout):
            _ = await process.wait()
        if process.returncode is None:
            self._logger.warning("tunnel_kill", pid=process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()

    async def _set_status(self, status: TunnelStatus) -> None:
        if status == self._status:
            return
        self._status = status
        if self._on_status is not None:
            await self._on_status(status)

    async def _emit_output(
        self,
        stream_name: Literal["stdout", "stderr"],
        pid: int,
        line: str,
    ) -> None:
        if self._on_output is None:
            return
        try:
            await self._on_output(stream_name, pid, line)
        except Exception:  # noqa: BLE001
            # Output consumers must not break supervision
            self._logger.exception("tunnel_output_sink_failed")

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            msg = "TunnelSupervisor is not bound to a task group"
            raise RuntimeError(msg)
        return self._task_group
