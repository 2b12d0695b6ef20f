"""Protocol definitions for the cloud VM controller.

This module defines the interfaces that decouple the lifecycle controller
from its collaborators:
- StateSink: Consumer of state snapshots and tunnel output
- ComputeApi: Power-state control of the remote instance
- CredentialSource: Source of fresh bearer credentials
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cloudvm.config import CloudVmConfig

    from ._models import CloudVmState, VmStatus


@runtime_checkable
class StateSink(Protocol):
    """Protocol for consuming controller output.

    StateSinks receive every emitted `state-changed` snapshot plus the
    output lines of the tunnel subprocess. The protocol is async to support
    non-blocking I/O such as pushing to a UI or a websocket.
    """

    async def write_state(self, state: CloudVmState) -> None:
        """Receive a new state snapshot.

        Args:
            state: The snapshot that was just published.
        """
        ...

    async def write_line(
        self,
        stream: Literal["stdout", "stderr"],
        pid: int,
        line: str,
    ) -> None:
        """Receive a line of tunnel subprocess output.

        Args:
            stream: Which output stream the line came from.
            pid: Process ID of the tunnel subprocess.
            line: The output line (without trailing newline).
        """
        ...


@runtime_checkable
class ComputeApi(Protocol):
    """Protocol for the provider's instance control plane."""

    async def start(self, config: CloudVmConfig, token: str) -> None:
        """Request the instance to power on."""
        ...

    async def stop(self, config: CloudVmConfig, token: str) -> None:
        """Request the instance to power off."""
        ...

    async def get_status(self, config: CloudVmConfig, token: str) -> VmStatus:
        """Return the instance's current power state."""
        ...


@runtime_checkable
class CredentialSource(Protocol):
    """Protocol for minting bearer credentials."""

    @property
    def is_refreshing(self) -> bool:
        """Return True while a refreshed credential is being written back."""
        ...

    async def refresh(self) -> str:
        """Return a fresh bearer credential."""
        ...
