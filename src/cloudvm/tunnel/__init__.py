"""Secure tunnel subprocess supervision."""

from ._models import TunnelProcess, TunnelSettings, TunnelTarget
from ._probe import PROBE_TIMEOUT, probe_tunnel, wait_for_tunnel
from ._supervisor import TunnelSupervisor, open_tunnel_process

__all__ = [
    "PROBE_TIMEOUT",
    "TunnelProcess",
    "TunnelSettings",
    "TunnelSupervisor",
    "TunnelTarget",
    "open_tunnel_process",
    "probe_tunnel",
    "wait_for_tunnel",
]
