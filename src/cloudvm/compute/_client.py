"""HTTP client for the compute provider's instance control plane.

This module provides a thin, stateless wrapper over the Compute Engine
instance endpoints: power on, power off, and status reads. Every request
is bearer-authenticated with a credential supplied by the caller and is
bounded by a hard per-request timeout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Self, final

import httpx
import structlog

from cloudvm.cloud._models import VmStatus
from cloudvm.exceptions import ApiError, NotConfiguredError, OperationTimeoutError

if TYPE_CHECKING:
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from cloudvm.config import CloudVmConfig

COMPUTE_API_BASE = "https://compute.googleapis.com/compute/v1"
API_TIMEOUT = 15.0
MAX_ERROR_BODY = 500

_INSTANCE_STATUS: dict[str, VmStatus] = {
    "RUNNING": VmStatus.RUNNING,
    "TERMINATED": VmStatus.OFF,
    "STOPPED": VmStatus.OFF,
    "STAGING": VmStatus.STARTING,
    "PROVISIONING": VmStatus.STARTING,
    "STOPPING": VmStatus.STOPPING,
    "SUSPENDING": VmStatus.STOPPING,
}


def map_instance_status(raw: object) -> VmStatus:
    """Map a provider instance status string to a VmStatus.

    Args:
        raw: The ``status`` field of the instance resource.

    Returns:
        The matching VmStatus, or UNKNOWN for anything unrecognized.
    """
    if not isinstance(raw, str):
        return VmStatus.UNKNOWN
    return _INSTANCE_STATUS.get(raw, VmStatus.UNKNOWN)


def instance_url(config: CloudVmConfig, base_url: str = COMPUTE_API_BASE) -> str:
    """Build the resource URL of the configured instance.

    Args:
        config: Cloud configuration naming project, zone, and instance.
        base_url: Root of the compute API.

    Returns:
        The instance resource URL.

    Raises:
        NotConfiguredError: If project, zone, or instance is missing.
    """
    missing = config.missing_fields("project_id", "zone", "server_id")
    if missing:
        msg = "Cloud config incomplete: projectId, zone, and serverId are all required."
        raise NotConfiguredError(msg, missing=missing)
    return (
        f"{base_url.rstrip('/')}/projects/{config.project_id}"
        f"/zones/{config.zone}/instances/{config.server_id}"
    )


@final
class ComputeClient:
    """Issues start, stop, and get-status calls against the compute API.

    The client holds no per-instance state; the instance and the bearer
    credential are passed on every call. Use it as an async context manager
    or call `aclose()` to release the underlying connection pool.
    """

    __slots__ = ("_base_url", "_client", "_logger", "_owns_client", "_timeout")

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = COMPUTE_API_BASE,
        timeout: float = API_TIMEOUT,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            client: HTTP client to use. A private one is created if None.
            base_url: Root of the compute API.
            timeout: Hard per-request timeout in seconds.
            logger: Structured logger. Uses the global structlog logger if None.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._base_url = base_url
        self._timeout = timeout
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="compute"
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def start(self, config: CloudVmConfig, token: str) -> None:
        """Request the instance to power on.

        Args:
            config: Cloud configuration naming the instance.
            token: Bearer credential.

        Raises:
            NotConfiguredError: If the instance is not fully configured.
            ApiError: If the API rejects the request.
            OperationTimeoutError: If the request exceeds the timeout.
        """
        await self._action(config, token, "start")

    async def stop(self, config: CloudVmConfig, token: str) -> None:
        """Request the instance to power off. The disk persists.

        Args:
            config: Cloud configuration naming the instance.
            token: Bearer credential.

        Raises:
            NotConfiguredError: If the instance is not fully configured.
            ApiError: If the API rejects the request.
            OperationTimeoutError: If the request exceeds the timeout.
        """
        await self._action(config, token, "stop")

    async def get_status(self, config: CloudVmConfig, token: str) -> VmStatus:
        """Read the instance's power state.

        Args:
            config: Cloud configuration naming the instance.
            token: Bearer credential.

        Returns:
            The mapped power state.

        Raises:
            NotConfiguredError: If the instance is not fully configured.
            ApiError: If the API rejects the request or returns invalid JSON.
            OperationTimeoutError: If the request exceeds the timeout.
        """
        response = await self._request("GET", instance_url(config, self._base_url), token)
        try:
            payload: object = response.json()
        except ValueError as e:
            msg = f"Compute API returned invalid JSON: {e}"
            raise ApiError(msg, status_code=response.status_code) from e

        raw = payload.get("status") if isinstance(payload, dict) else None
        return map_instance_status(raw)

    async def _action(
        self,
        config: CloudVmConfig,
        token: str,
        action: Literal["start", "stop"],
    ) -> None:
        url = f"{instance_url(config, self._base_url)}/{action}"
        self._logger.info("compute_action", action=action, server_id=config.server_id)
        _ = await self._request("POST", url, token)

    async def _request(self, method: str, url: str, token: str) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            msg = f"Compute API request timed out after {self._timeout:g}s"
            self._logger.error("compute_timeout", method=method, url=url)
            raise OperationTimeoutError(msg, timeout=self._timeout) from e
        except httpx.HTTPError as e:
            msg = f"Compute API request failed: {e}"
            self._logger.error("compute_transport_error", method=method, error=str(e))
            raise ApiError(msg) from e

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY]
            msg = f"HTTP {response.status_code}: {body}"
            self._logger.error(
                "compute_api_error", status_code=response.status_code, body=body
            )
            raise ApiError(msg, status_code=response.status_code, body=body)

        return response
