"""cloudvm exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class CloudVmError(Exception):
    """Base exception for cloudvm errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(CloudVmError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class NotConfiguredError(CloudVmError):
    """Raised when the cloud section or a required field is missing.

    This is user-fixable and never retried.

    Attributes:
        missing: Names of the configuration fields that are missing.
    """

    def __init__(self, message: str, *, missing: tuple[str, ...] = ()) -> None:
        """Initialize with error message and the missing field names.

        Args:
            message: Human-readable error message.
            missing: Names of the missing configuration fields.
        """
        super().__init__(message)
        self.missing: tuple[str, ...] = missing


# =============================================================================
# Remote Control Exceptions
# =============================================================================


class AuthError(CloudVmError):
    """Raised when the credential tool fails to produce a bearer token."""


class ApiError(CloudVmError):
    """Raised when the compute API answers with a non-2xx response.

    Attributes:
        status_code: HTTP status code, or None for transport failures.
        body: Response body, truncated.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        """Initialize with error message and response context.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code of the response.
            body: Truncated response body.
        """
        super().__init__(message)
        self.status_code: int | None = status_code
        self.body: str = body


class OperationTimeoutError(CloudVmError, TimeoutError):
    """Raised when a hard deadline is exceeded.

    Covers VM state convergence, tunnel readiness, and single API requests.

    Attributes:
        timeout: The deadline in seconds that was exceeded.
    """

    def __init__(self, message: str, *, timeout: float | None = None) -> None:
        """Initialize with error message and the exceeded deadline.

        Args:
            message: Human-readable error message.
            timeout: The deadline in seconds.
        """
        super().__init__(message)
        self.timeout: float | None = timeout


# =============================================================================
# Tunnel Exceptions
# =============================================================================


class TunnelProcessError(CloudVmError):
    """Raised when the tunnel subprocess fails to spawn or exits early.

    Attributes:
        exit_code: Exit code of the process, if it exited.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and process context.

        Args:
            message: Human-readable error message.
            exit_code: Exit code of the process, if it exited.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.exit_code: int | None = exit_code
        self.cause: Exception | None = cause
