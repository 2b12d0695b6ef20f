"""Health probes for the local end of the tunnel."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import anyio
import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from cloudvm.exceptions import OperationTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

PROBE_TIMEOUT = 3.0


async def probe_tunnel(port: int, *, timeout: float = PROBE_TIMEOUT) -> bool:
    """Check once whether the tunnel forwards HTTP traffic.

    Args:
        port: Local tunnel port.
        timeout: Seconds allowed for the request.

    Returns:
        True if the remote service answered with a 2xx or 3xx status.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        try:
            response = await client.get(f"http://localhost:{port}/")
        except httpx.HTTPError:
            return False
    return 200 <= response.status_code < 400  # noqa: PLR2004


async def wait_for_tunnel(
    port: int,
    *,
    timeout: float = 30.0,
    interval: float = 2.0,
    probe: Callable[[int], Awaitable[bool]] = probe_tunnel,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> None:
    """Probe the tunnel until it forwards traffic or the deadline passes.

    Args:
        port: Local tunnel port.
        timeout: Seconds to keep retrying.
        interval: Seconds between probes.
        probe: Single-shot probe returning True when the tunnel is usable.
        sleep: Sleep function used between probes.

    Raises:
        OperationTimeoutError: If no probe succeeded within the deadline.
    """
    max_attempts = max(1, math.ceil(timeout / interval) + 1) if interval > 0 else 1
    retrying = AsyncRetrying(
        stop=stop_after_delay(timeout) | stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda ok: not ok),
        sleep=sleep,
    )
    try:
        _ = await retrying(probe, port)
    except RetryError as e:
        msg = f"Tunnel health check did not pass within {timeout:g}s"
        raise OperationTimeoutError(msg, timeout=timeout) from e
