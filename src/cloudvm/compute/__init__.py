"""Compute provider access: instance control API and credential refresh."""

from ._client import (
    API_TIMEOUT,
    COMPUTE_API_BASE,
    ComputeClient,
    instance_url,
    map_instance_status,
)
from ._credentials import TOKEN_COMMAND, CredentialRefresher

__all__ = [
    "API_TIMEOUT",
    "COMPUTE_API_BASE",
    "TOKEN_COMMAND",
    "ComputeClient",
    "CredentialRefresher",
    "instance_url",
    "map_instance_status",
]
