"""Remote compute lifecycle and tunnel controller.

This package provides the CloudVmController that powers a single remote
instance on and off, supervises the tunnel to it, and keeps a cached
CloudVmState fresh through background polling.

Example:
    ```python
    from cloudvm.cloud import CloudVmController, ConsoleStateSink
    from cloudvm.config import ConfigManager

    manager = ConfigManager()
    manager.load()
    async with CloudVmController(manager, sinks=[ConsoleStateSink()]) as controller:
        await controller.start_vm()
    ```
"""

from ._api import create_control_router
from ._backoff import ExponentialBackoff
from ._controller import CONVERGENCE_POLL_INTERVAL, CONVERGENCE_TIMEOUT, CloudVmController
from ._models import (
    REMOTE_VIEW_QUERY,
    CloudVmState,
    ControllerPhase,
    TunnelStatus,
    VmStatus,
    build_remote_view_url,
    get_timestamp,
)
from ._output import ConsoleStateSink
from ._poller import DEFAULT_POLL_INTERVAL, MAX_POLL_INTERVAL, StatusPoller
from ._protocol import ComputeApi, CredentialSource, StateSink

__all__ = [
    "CONVERGENCE_POLL_INTERVAL",
    "CONVERGENCE_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "MAX_POLL_INTERVAL",
    "REMOTE_VIEW_QUERY",
    "CloudVmController",
    "CloudVmState",
    "ComputeApi",
    "ConsoleStateSink",
    "ControllerPhase",
    "CredentialSource",
    "ExponentialBackoff",
    "StateSink",
    "StatusPoller",
    "TunnelStatus",
    "VmStatus",
    "build_remote_view_url",
    "create_control_router",
    "get_timestamp",
]
