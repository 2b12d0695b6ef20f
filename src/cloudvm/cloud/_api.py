"""FastAPI control endpoints for the cloud VM controller.

This module provides REST API endpoints for reading the cached state and
driving the instance, the tunnel, and background polling. Every route
answers with the same envelope: ``{"success": true, "data": ...}`` on
success and ``{"success": false, "error": "..."}`` on failure.
"""

# pyright: reportUnusedFunction=false
# FastAPI route handlers are registered via decorators, not direct calls

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from cloudvm.exceptions import (
    ApiError,
    AuthError,
    CloudVmError,
    NotConfiguredError,
    OperationTimeoutError,
    TunnelProcessError,
)

from ._poller import DEFAULT_POLL_INTERVAL

if TYPE_CHECKING:
    from ._controller import CloudVmController
    from ._models import CloudVmState


class StateData(BaseModel):
    """Serialized CloudVmState."""

    status: str
    ip: str | None
    remote_view_url: str | None
    provider: str | None
    server_id: str | None
    last_checked: str | None
    error: str | None
    tunnel_status: str


class StateEnvelope(BaseModel):
    """Response envelope carrying a state snapshot or an error."""

    success: bool
    data: StateData | None = None
    error: str | None = None


class MessageEnvelope(BaseModel):
    """Response envelope carrying a short message or an error."""

    success: bool
    data: str | None = None
    error: str | None = None


_ERROR_STATUS: tuple[tuple[type[CloudVmError], int], ...] = (
    (NotConfiguredError, status.HTTP_409_CONFLICT),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (OperationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ApiError, status.HTTP_502_BAD_GATEWAY),
    (TunnelProcessError, status.HTTP_502_BAD_GATEWAY),
)


def _status_for(error: Exception) -> int:
    """Map an exception to the HTTP status of its failure envelope.

    Args:
        error: The exception raised by the controller.

    Returns:
        The HTTP status code.
    """
    for error_type, code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _state_envelope(state: CloudVmState) -> StateEnvelope:
    return StateEnvelope(success=True, data=StateData.model_validate(state.to_dict()))


def _failure(response: Response, error: Exception) -> StateEnvelope:
    response.status_code = _status_for(error)
    return StateEnvelope(success=False, error=str(error))


def create_control_router(controller: CloudVmController) -> APIRouter:
    """Create a FastAPI router for cloud VM control endpoints.

    Args:
        controller: The CloudVmController instance to drive.

    Returns:
        A FastAPI APIRouter with control endpoints under ``/cloud``.
    """
    router = APIRouter(prefix="/cloud", tags=["cloud"])

    @router.get("/state", response_model=StateEnvelope)
    async def get_state() -> StateEnvelope:
        """Refresh and return the current state."""
        return _state_envelope(await controller.get_state())

    @router.post("/vm/start", response_model=StateEnvelope)
    async def start_vm(response: Response) -> StateEnvelope:
        """Power the instance on and open the tunnel."""
        try:
            state = await controller.start_vm()
        except CloudVmError as e:
            return _failure(response, e)
        return _state_envelope(state)

    @router.post("/vm/stop", response_model=StateEnvelope)
    async def stop_vm(response: Response) -> StateEnvelope:
        """Close the tunnel and power the instance off."""
        try:
            state = await controller.stop_vm()
        except CloudVmError as e:
            return _failure(response, e)
        return _state_envelope(state)

    @router.post("/tunnel/start", response_model=StateEnvelope)
    async def start_tunnel(response: Response) -> StateEnvelope:
        """Open the tunnel to a running instance."""
        try:
            state = await controller.start_tunnel()
        except CloudVmError as e:
            return _failure(response, e)
        return _state_envelope(state)

    @router.post("/tunnel/stop", response_model=StateEnvelope)
    async def stop_tunnel() -> StateEnvelope:
        """Close the tunnel."""
        return _state_envelope(await controller.stop_tunnel())

    @router.post("/polling/start", response_model=MessageEnvelope)
    async def start_polling(
        interval: Annotated[float, Query(gt=0)] = DEFAULT_POLL_INTERVAL,
    ) -> MessageEnvelope:
        """Start background status polling."""
        controller.start_polling(interval)
        return MessageEnvelope(success=True, data=f"Polling every {interval:g}s")

    @router.post("/polling/stop", response_model=MessageEnvelope)
    async def stop_polling() -> MessageEnvelope:
        """Stop background status polling."""
        controller.stop_polling()
        return MessageEnvelope(success=True, data="Polling stopped")

    return router
