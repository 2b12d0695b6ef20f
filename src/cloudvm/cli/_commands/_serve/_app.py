"""Control application factory for the serve command.

This module provides a factory function for creating the FastAPI control
application that exposes the controller endpoints.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI

from cloudvm.cloud import create_control_router

if TYPE_CHECKING:
    from cloudvm.cloud import CloudVmController


def create_control_app(controller: CloudVmController) -> FastAPI:
    """Create the FastAPI control application.

    Creates a minimal FastAPI app with the cloud control router mounted.

    Args:
        controller: The CloudVmController instance to drive.

    Returns:
        A FastAPI application with cloud control endpoints.
    """
    app = FastAPI(
        title="cloudvm Control",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    control_router = create_control_router(controller)
    app.include_router(control_router)

    return app
