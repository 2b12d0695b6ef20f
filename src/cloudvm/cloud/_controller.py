"""Lifecycle controller for the managed cloud instance.

This module provides the CloudVmController class, the orchestrating core
that powers the instance on and off, waits for the remote state to
converge, brings the tunnel up after a successful boot, and owns the
cached CloudVmState that every observer reads.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Literal, Self, final

import anyio
import anyio.abc
import structlog

from cloudvm.config import CloudProvider
from cloudvm.exceptions import AuthError, CloudVmError, NotConfiguredError, OperationTimeoutError

from ._models import (
    CloudVmState,
    ControllerPhase,
    TunnelStatus,
    VmStatus,
    build_remote_view_url,
    get_timestamp,
)
from ._poller import DEFAULT_POLL_INTERVAL, StatusPoller

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from cloudvm.config import CloudVmConfig, Config, ConfigManager
    from cloudvm.tunnel import TunnelSupervisor

    from ._protocol import ComputeApi, CredentialSource, StateSink

    ClockFunc = Callable[[], float]
    SleepFunc = Callable[[float], Awaitable[None]]
    ProbeFunc = Callable[[int], Awaitable[bool]]

CONVERGENCE_POLL_INTERVAL = 3.0
CONVERGENCE_TIMEOUT = 60.0


@final
class CloudVmController:
    """Orchestrates the instance lifecycle, the tunnel, and the state cache.

    Use as an async context manager. The context owns the task group that
    hosts tunnel supervision, the reconnect timer, and the poll loop;
    leaving it stops polling and the tunnel.

    Start and stop are single-flight: while one runs, further start or stop
    requests return the cached state immediately without touching the
    compute API.

    Example:
        ```python
        async with CloudVmController(ConfigManager()) as controller:
            state = await controller.start_vm()
        ```
    """

    __slots__ = (
        "_clock",
        "_compute",
        "_config_manager",
        "_convergence_timeout",
        "_credentials",
        "_logger",
        "_owned_compute",
        "_phase",
        "_poll_interval",
        "_poller",
        "_probe",
        "_sinks",
        "_sleep",
        "_state",
        "_task_group",
        "_tunnel",
        "_unsubscribe",
    )

    def __init__(  # noqa: PLR0913
        self,
        config_manager: ConfigManager,
        *,
        compute: ComputeApi | None = None,
        credentials: CredentialSource | None = None,
        tunnel: TunnelSupervisor | None = None,
        sinks: Sequence[StateSink] = (),
        probe: ProbeFunc | None = None,
        clock: ClockFunc = anyio.current_time,
        sleep: SleepFunc = anyio.sleep,
        logger: FilteringBoundLogger | None = None,
        poll_interval: float = CONVERGENCE_POLL_INTERVAL,
        convergence_timeout: float = CONVERGENCE_TIMEOUT,
    ) -> None:
        """Initialize the controller.

        Args:
            config_manager: Configuration accessor.
            compute: Compute API client. Uses ComputeClient if None.
            credentials: Credential source. Uses CredentialRefresher if None.
            tunnel: Tunnel supervisor. Uses a default TunnelSupervisor if None.
            sinks: Initial state sinks.
            probe: One-shot tunnel health probe used by `get_state()`.
            clock: Monotonic clock for convergence deadlines.
            sleep: Sleep function for convergence polling and backoff.
            logger: Structured logger. Uses the global structlog logger if None.
            poll_interval: Seconds between status reads while converging.
            convergence_timeout: Seconds allowed for the remote state to converge.
        """
        from cloudvm.compute import ComputeClient, CredentialRefresher  # noqa: PLC0415
        from cloudvm.tunnel import TunnelSupervisor, probe_tunnel  # noqa: PLC0415

        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="controller"
        )
        self._config_manager = config_manager
        self._owned_compute: ComputeClient | None = None
        if compute is None:
            compute = self._owned_compute = ComputeClient(logger=self._logger)
        self._compute: ComputeApi = compute
        self._credentials: CredentialSource = credentials or CredentialRefresher(
            config_manager, logger=self._logger
        )
        self._tunnel: TunnelSupervisor = tunnel or TunnelSupervisor(
            sleep=sleep, logger=self._logger
        )
        self._tunnel.attach(
            on_status=self._on_tunnel_status,
            on_output=self._on_tunnel_output,
        )
        self._probe: ProbeFunc = probe or probe_tunnel
        self._sinks: list[StateSink] = list(sinks)
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval
        self._convergence_timeout = convergence_timeout
        self._poller = StatusPoller(self.get_state, sleep=sleep, logger=self._logger)

        self._state = CloudVmState()
        self._phase = ControllerPhase.IDLE
        self._task_group: anyio.abc.TaskGroup | None = None
        self._unsubscribe: Callable[[], None] | None = None

    async def __aenter__(self) -> Self:
        """Open the task group and subscribe to configuration changes."""
        task_group = anyio.create_task_group()
        _ = await task_group.__aenter__()
        self._task_group = task_group
        self._tunnel.bind(task_group)
        self._unsubscribe = self._config_manager.subscribe(self._on_config_updated)
        self._logger.debug("controller_opened")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        """Stop polling and the tunnel, then close the task group."""
        self._poller.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        task_group = self._task_group
        self._task_group = None
        if task_group is None:
            return None

        try:
            await self._tunnel.aclose()
            if self._owned_compute is not None:
                with anyio.CancelScope(shield=True):
                    await self._owned_compute.aclose()
        finally:
            task_group.cancel_scope.cancel()
            if exc_val is not None and not isinstance(exc_val, anyio.get_cancelled_exc_class()):
                # Errors from the body propagate as-is, not in an exception group
                exc_type, exc_val, exc_tb = None, None, None
            try:
                result = await task_group.__aexit__(exc_type, exc_val, exc_tb)
            finally:
                self._tunnel.bind(None)
                self._logger.debug("controller_closed")
        return result

    @property
    def state(self) -> CloudVmState:
        """Return the cached state snapshot."""
        return self._state

    @property
    def phase(self) -> ControllerPhase:
        """Return the current single-flight phase."""
        return self._phase

    @property
    def operation_in_progress(self) -> bool:
        """Return True while a start or stop sequence is running."""
        return self._phase != ControllerPhase.IDLE

    @property
    def poller(self) -> StatusPoller:
        """Return the status poller."""
        return self._poller

    def add_sink(self, sink: StateSink) -> None:
        """Register a state sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: StateSink) -> None:
        """Unregister a state sink. Unknown sinks are ignored."""
        if sink in self._sinks:
            self._sinks.remove(sink)

    # -------------------------------------------------------------------------
    # State reads
    # -------------------------------------------------------------------------

    async def get_state(self) -> CloudVmState:
        """Refresh the cached state from the remote API and the tunnel.

        Never raises. Failures are reported through ``status=unknown`` and
        the ``error`` field of the returned state.

        Returns:
            The new cached state, which has also been emitted.
        """
        config = self._config_manager.cloud
        if config is None or not config.is_valid:
            state = dataclasses.replace(self._state, status=VmStatus.NOT_PROVISIONED)
            await self._publish(state)
            return state

        try:
            token = await self._authorized()
            status = await self._compute.get_status(config, token)
            tunnel_status = await self._current_tunnel_status(config, status)
        except Exception as e:  # noqa: BLE001
            self._logger.warning("state_refresh_failed", error=str(e))
            state = dataclasses.replace(
                self._state,
                status=VmStatus.UNKNOWN,
                remote_view_url=None,
                error=str(e),
            )
        else:
            state = self._snapshot(config, status, tunnel_status=tunnel_status)

        await self._publish(state)
        return state

    async def _current_tunnel_status(
        self,
        config: CloudVmConfig,
        status: VmStatus,
    ) -> TunnelStatus:
        if self._tunnel.has_process:
            return self._tunnel.status
        if status == VmStatus.RUNNING:
            # A probe failure means "off", never "error"
            reachable = await self._probe(config.tunnel_port)
            return TunnelStatus.RUNNING if reachable else TunnelStatus.OFF
        return self._tunnel.status

    def _snapshot(
        self,
        config: CloudVmConfig,
        status: VmStatus,
        *,
        tunnel_status: TunnelStatus | None = None,
    ) -> CloudVmState:
        remote_view_url = None
        if status == VmStatus.RUNNING:
            remote_view_url = build_remote_view_url(
                config.tunnel_port,
                config.vnc_password,
                path=config.remote_view_path,
            )
        return CloudVmState(
            status=status,
            ip=None,
            remote_view_url=remote_view_url,
            provider=config.provider or CloudProvider.GCP,
            server_id=config.server_id,
            last_checked=get_timestamp(),
            error=None,
            tunnel_status=tunnel_status if tunnel_status is not None else self._tunnel.status,
        )

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def start_vm(self) -> CloudVmState:
        """Power the instance on, wait for it to run, then open the tunnel.

        A tunnel failure after a successful boot does not fail the call; it
        is reported through ``tunnel_status=error`` and ``error``.

        Returns:
            The final cached state, or the current one if another start or
            stop is already running.

        Raises:
            NotConfiguredError: If the cloud section or instance is missing.
            AuthError: If no credential could be obtained.
            ApiError: If the compute API rejected the request.
            OperationTimeoutError: If the instance did not reach running in time.
        """
        if self.operation_in_progress:
            self._logger.warning("operation_in_progress", requested="start", phase=self._phase)
            return self._state

        self._phase = ControllerPhase.STARTING
        try:
            config = self._require_instance()
            self._logger.info("vm_start_requested", server_id=config.server_id)

            # Optimistic update before any network round-trip
            await self._publish(
                dataclasses.replace(self._state, status=VmStatus.STARTING, error=None)
            )

            try:
                token = await self._authorized()
                await self._compute.start(config, token)
                await self._wait_for_status(config, VmStatus.RUNNING)
            except Exception as e:
                await self._publish_failure(e)
                raise

            self._logger.info("vm_started", server_id=config.server_id)
            try:
                await self.start_tunnel(config)
            except CloudVmError as e:
                self._logger.error("vm_tunnel_failed", error=str(e))
                await self._publish(
                    dataclasses.replace(
                        self._state,
                        tunnel_status=TunnelStatus.ERROR,
                        error=f"VM running but tunnel failed: {e}",
                    )
                )
            return self._state
        finally:
            self._phase = ControllerPhase.IDLE

    async def stop_vm(self) -> CloudVmState:
        """Close the tunnel, power the instance off, and wait for it to stop.

        Returns:
            The final cached state, or the current one if another start or
            stop is already running.

        Raises:
            NotConfiguredError: If the cloud section or instance is missing.
            AuthError: If no credential could be obtained.
            ApiError: If the compute API rejected the request.
            OperationTimeoutError: If the instance did not reach off in time.
        """
        if self.operation_in_progress:
            self._logger.warning("operation_in_progress", requested="stop", phase=self._phase)
            return self._state

        self._phase = ControllerPhase.STOPPING
        try:
            config = self._require_instance()
            self._logger.info("vm_stop_requested", server_id=config.server_id)

            self._tunnel.stop()
            await self._publish(
                dataclasses.replace(
                    self._state,
                    status=VmStatus.STOPPING,
                    remote_view_url=None,
                    tunnel_status=TunnelStatus.OFF,
                    error=None,
                )
            )

            try:
                token = await self._authorized()
                await self._compute.stop(config, token)
                await self._wait_for_status(config, VmStatus.OFF)
            except Exception as e:
                await self._publish_failure(e)
                raise

            self._logger.info("vm_stopped", server_id=config.server_id)
            return self._state
        finally:
            self._phase = ControllerPhase.IDLE

    async def start_tunnel(self, config: CloudVmConfig | None = None) -> CloudVmState:
        """Open the tunnel to the configured instance.

        Args:
            config: Cloud configuration. Uses the current one if None.

        Returns:
            The cached state after the tunnel became ready.

        Raises:
            NotConfiguredError: If instance, zone, or project is missing.
            TunnelProcessError: If the tunnel process failed to start.
            OperationTimeoutError: If the tunnel did not become ready in time.
        """
        from cloudvm.tunnel import TunnelTarget  # noqa: PLC0415

        if config is None:
            config = self._config_manager.cloud
        if config is None:
            msg = "Cloud VM not configured"
            raise NotConfiguredError(msg, missing=("cloud",))

        target = TunnelTarget.from_config(config)
        await self._tunnel.start(target)
        return self._state

    async def stop_tunnel(self) -> CloudVmState:
        """Close the tunnel. Safe to call when no tunnel is open.

        Returns:
            The cached state with ``tunnel_status=off``.
        """
        self._tunnel.stop()
        await self._publish(dataclasses.replace(self._state, tunnel_status=TunnelStatus.OFF))
        return self._state

    def start_polling(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Start background status polling, replacing any running loop.

        Args:
            interval: Nominal seconds between polls.
        """
        self._poller.start(self._require_task_group(), interval)

    def stop_polling(self) -> None:
        """Stop background status polling."""
        self._poller.stop()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_instance(self) -> CloudVmConfig:
        config = self._config_manager.cloud
        if config is None or not config.is_valid:
            msg = "Cloud VM not configured"
            raise NotConfiguredError(msg, missing=("cloud",))
        if not config.server_id:
            msg = "No server ID configured"
            raise NotConfiguredError(msg, missing=("server_id",))
        return config

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            msg = "CloudVmController must be used as an async context manager"
            raise RuntimeError(msg)
        return self._task_group

    async def _authorized(self) -> str:
        try:
            return await self._credentials.refresh()
        except AuthError as e:
            msg = f"GCP authentication failed (re-run cloud setup to re-authenticate): {e}"
            raise AuthError(msg) from e

    async def _wait_for_status(self, config: CloudVmConfig, target: VmStatus) -> None:
        deadline = self._clock() + self._convergence_timeout
        current = self._state.status

        while self._clock() < deadline:
            await self._sleep(self._poll_interval)
            token = await self._authorized()
            current = await self._compute.get_status(config, token)
            await self._publish(self._snapshot(config, current))
            self._logger.debug("vm_status_polled", status=current, target=target)
            if current == target:
                return

        timeout = self._convergence_timeout
        msg = f"VM did not reach '{target}' within {timeout:g}s (current: {current})"
        raise OperationTimeoutError(msg, timeout=timeout)

    async def _publish_failure(self, error: Exception) -> None:
        self._logger.error("vm_operation_failed", phase=self._phase, error=str(error))
        await self._publish(
            dataclasses.replace(
                self._state,
                status=VmStatus.UNKNOWN,
                remote_view_url=None,
                error=str(error),
            )
        )

    async def _publish(self, state: CloudVmState) -> None:
        self._state = state
        for sink in list(self._sinks):
            try:
                await sink.write_state(state)
            except Exception:  # noqa: BLE001
                self._logger.exception("state_sink_failed")

    async def _on_tunnel_status(self, status: TunnelStatus) -> None:
        self._logger.debug("tunnel_status_changed", tunnel_status=status)
        await self._publish(dataclasses.replace(self._state, tunnel_status=status))

    async def _on_tunnel_output(
        self,
        stream: Literal["stdout", "stderr"],
        pid: int,
        line: str,
    ) -> None:
        for sink in list(self._sinks):
            try:
                await sink.write_line(stream, pid, line)
            except Exception:  # noqa: BLE001
                self._logger.exception("state_sink_failed")

    async def _on_config_updated(self, _config: Config) -> None:
        if self._credentials.is_refreshing:
            self._logger.debug("config_update_ignored", reason="token_refresh")
            return
        _ = await self.get_state()
