"""Data models for the tunnel supervisor.

This module defines:
- TunnelSettings: Timing and command settings for the supervisor
- TunnelTarget: The instance endpoint a tunnel forwards to
- TunnelProcess: Protocol for the supervised subprocess handle
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Self

from cloudvm.exceptions import NotConfiguredError

if TYPE_CHECKING:
    from anyio.abc import ByteReceiveStream

    from cloudvm.config import CloudVmConfig


@dataclass(frozen=True, slots=True)
class TunnelSettings:
    """Settings for spawning and supervising the tunnel subprocess.

    Attributes:
        executable: The provider CLI that opens the tunnel.
        ready_marker: Substring on stderr that signals the tunnel listens.
        ready_timeout: Seconds to wait for the ready marker.
        health_timeout: Seconds to keep probing the local port after ready.
        health_interval: Seconds between health probes.
        probe_timeout: Seconds allowed for a single health probe.
        reconnect_delay: Seconds before the single automatic reconnect.
        shutdown_timeout: Seconds to wait after SIGTERM before SIGKILL.
    """

    executable: str = "gcloud"
    ready_marker: str = "Listening on port"
    ready_timeout: float = 30.0
    health_timeout: float = 30.0
    health_interval: float = 2.0
    probe_timeout: float = 3.0
    reconnect_delay: float = 3.0
    shutdown_timeout: float = 5.0


@dataclass(frozen=True, slots=True)
class TunnelTarget:
    """Endpoint a tunnel forwards a local port to.

    Attributes:
        server_id: Instance identifier.
        zone: Provider zone of the instance.
        project_id: Provider project of the instance.
        local_port: Port the tunnel listens on locally.
        remote_port: Service port on the instance.
    """

    server_id: str
    zone: str
    project_id: str
    local_port: int
    remote_port: int

    @classmethod
    def from_config(cls, config: CloudVmConfig) -> Self:
        """Build a target from the cloud configuration.

        Args:
            config: The cloud section.

        Returns:
            The tunnel target.

        Raises:
            NotConfiguredError: If instance, zone, or project is missing.
        """
        missing = config.missing_fields("server_id", "zone", "project_id")
        if missing:
            msg = (
                "Cloud config missing required fields for tunnel "
                "(serverId, zone, projectId)."
            )
            raise NotConfiguredError(msg, missing=missing)
        return cls(
            server_id=str(config.server_id),
            zone=str(config.zone),
            project_id=str(config.project_id),
            local_port=config.tunnel_port,
            remote_port=config.remote_port,
        )

    def command(self, executable: str = "gcloud") -> tuple[str, ...]:
        """Return the command line that opens this tunnel.

        Args:
            executable: The provider CLI.

        Returns:
            Command and arguments.
        """
        return (
            executable,
            "compute",
            "start-iap-tunnel",
            self.server_id,
            str(self.remote_port),
            f"--local-host-port=localhost:{self.local_port}",
            f"--zone={self.zone}",
            f"--project={self.project_id}",
        )


class TunnelProcess(Protocol):
    """Protocol for the subprocess handle the supervisor owns.

    Matches `anyio.abc.Process`; tests substitute in-memory fakes.
    """

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    @property
    def stdout(self) -> ByteReceiveStream | None: ...

    @property
    def stderr(self) -> ByteReceiveStream | None: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...
