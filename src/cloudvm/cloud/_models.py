"""Data models for the cloud VM controller.

This module defines the core data types for the lifecycle controller:
- VmStatus: Power state of the remote instance
- TunnelStatus: Lifecycle state of the local tunnel subprocess
- ControllerPhase: Which operation the controller is running, if any
- CloudVmState: Immutable snapshot handed to callers and sinks
"""

from dataclasses import asdict, dataclass
from enum import StrEnum
from urllib.parse import quote

from cloudvm.config import DEFAULT_REMOTE_VIEW_PATH, CloudProvider

REMOTE_VIEW_QUERY = "autoconnect=true&resize=scale&reconnect=true&reconnect_delay=1000"


class VmStatus(StrEnum):
    """Remote instance power states.

    NOT_PROVISIONED is a local sentinel meaning no valid configuration
    exists; the compute API never reports it.
    """

    OFF = "off"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    UNKNOWN = "unknown"
    INITIALIZING = "initializing"
    NOT_PROVISIONED = "not_provisioned"


class TunnelStatus(StrEnum):
    """Tunnel subprocess lifecycle states.

    OFF is used both for "never started" and for a failed health probe.
    ERROR is reserved for failures reported by the subprocess itself.
    """

    OFF = "off"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


class ControllerPhase(StrEnum):
    """Single-flight phases of the lifecycle controller."""

    IDLE = "idle"
    STARTING = "starting"
    STOPPING = "stopping"


def get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").to_iso8601_string()


def build_remote_view_url(
    tunnel_port: int,
    password: str | None = None,
    *,
    path: str = DEFAULT_REMOTE_VIEW_PATH,
) -> str:
    """Build the local remote-view URL served through the tunnel.

    Args:
        tunnel_port: Local port the tunnel listens on.
        password: Optional pre-shared password to pre-fill.
        path: Path of the remote-view page.

    Returns:
        The URL, with a ``password`` parameter only when a password is given.
    """
    if not path.startswith("/"):
        path = f"/{path}"
    url = f"http://localhost:{tunnel_port}{path}?{REMOTE_VIEW_QUERY}"
    if password:
        return f"{url}&password={quote(password, safe='')}"
    return url


@dataclass(frozen=True, slots=True)
class CloudVmState:
    """Snapshot of the managed instance and its tunnel.

    Instances are never mutated. The controller builds a new snapshot with
    `dataclasses.replace` and swaps it in whole, so readers never observe a
    half-updated record.

    Attributes:
        status: Remote power state.
        ip: Public address. Always None with tunnelled access.
        remote_view_url: Local URL of the remote view. Set only while running.
        provider: Compute provider, or None before the first refresh.
        server_id: Instance identifier, or None if not configured.
        last_checked: ISO 8601 timestamp of the last successful remote read.
        error: Human-readable description of the last failure, if any.
        tunnel_status: Tunnel subprocess state.
    """

    status: VmStatus = VmStatus.UNKNOWN
    ip: str | None = None
    remote_view_url: str | None = None
    provider: CloudProvider | None = None
    server_id: str | None = None
    last_checked: str | None = None
    error: str | None = None
    tunnel_status: TunnelStatus = TunnelStatus.OFF

    def to_dict(self) -> dict[str, str | None]:
        """Convert the snapshot to a JSON-ready dictionary.

        Returns:
            Dictionary with enum members rendered as their string values.
        """
        data = asdict(self)
        return {
            key: value.value if isinstance(value, StrEnum) else value
            for key, value in data.items()
        }
