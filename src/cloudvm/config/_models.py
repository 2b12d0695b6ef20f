# pyright: reportExplicitAny=false, reportAny=false
"""Configuration models.

This module provides the Pydantic models for the cloudvm configuration
file: the logging section, the cloud section consumed by the lifecycle
controller, and the Config container that holds both.
"""

from enum import StrEnum
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TUNNEL_PORT = 8080
DEFAULT_REMOTE_PORT = 80
DEFAULT_REMOTE_VIEW_PATH = "/novnc/vnc.html"


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class CloudProvider(StrEnum):
    """Supported compute providers."""

    GCP = "gcp"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty uses the default log file).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class CloudVmConfig(BaseModel):
    """Cloud section describing the single managed instance.

    Owned by the configuration manager. The lifecycle controller only reads
    it, except for writing back a refreshed api_token.

    Attributes:
        provider: Compute provider tag.
        api_token: Bearer credential for the compute API.
        server_id: Instance identifier.
        server_ip: Legacy public address, unused with tunnelled access.
        vnc_password: Optional pre-shared remote-view password.
        region: Optional region.
        project_id: Provider project identifier.
        zone: Provider zone.
        tunnel_port: Local port the tunnel listens on.
        remote_port: Service port on the instance the tunnel forwards to.
        remote_view_path: Path of the remote-view page served through the tunnel.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    provider: CloudProvider | None = None
    api_token: str = ""
    server_id: str | None = None
    server_ip: str | None = None
    vnc_password: str | None = None
    region: str | None = None
    project_id: str | None = None
    zone: str | None = None
    tunnel_port: int = Field(default=DEFAULT_TUNNEL_PORT, ge=1, le=65535)
    remote_port: int = Field(default=DEFAULT_REMOTE_PORT, ge=1, le=65535)
    remote_view_path: str = DEFAULT_REMOTE_VIEW_PATH

    @property
    def is_valid(self) -> bool:
        """Return True when provider and credential are both set."""
        return self.provider is not None and bool(self.api_token)

    def missing_fields(self, *names: str) -> tuple[str, ...]:
        """Return the names among `names` whose values are empty.

        Args:
            names: Attribute names to check.

        Returns:
            The empty attribute names, in the order given.
        """
        return tuple(name for name in names if not getattr(self, name))


class Config(BaseModel):
    """Configuration container with typed access.

    Use `from_dict()` or the configuration manager rather than the
    constructor so that unknown sections are ignored consistently.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cloud: CloudVmConfig | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create configuration from a dictionary.

        Args:
            data: Dictionary of configuration values, as read from TOML.

        Returns:
            Configuration object from the dictionary.

        Raises:
            pydantic.ValidationError: If a value has the wrong type.
        """
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert the configuration to a TOML-ready dictionary.

        None values are dropped because TOML has no null.

        Returns:
            Nested dictionary of configuration values.
        """
        return self.model_dump(mode="json", exclude_none=True)

    def with_cloud(self, **changes: Any) -> Self:
        """Return a copy with the cloud section updated.

        Args:
            changes: Cloud fields to replace.

        Returns:
            New configuration with the merged cloud section.
        """
        current = self.cloud.model_dump() if self.cloud is not None else {}
        cloud = CloudVmConfig.model_validate({**current, **changes})
        return self.model_copy(update={"cloud": cloud})
