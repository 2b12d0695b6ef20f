"""Configuration for cloudvm.

The configuration file is TOML with a ``[logging]`` section and a
``[cloud]`` section describing the managed instance. ConfigManager is the
read/write accessor the lifecycle controller consumes.
"""

from ._loader import (
    CONFIG_PATH_ENV,
    get_default_config_path,
    read_toml_file,
    write_toml_file,
)
from ._manager import ConfigManager
from ._models import (
    DEFAULT_REMOTE_PORT,
    DEFAULT_REMOTE_VIEW_PATH,
    DEFAULT_TUNNEL_PORT,
    CloudProvider,
    CloudVmConfig,
    Config,
    LogFormat,
    LoggingConfig,
    LogLevel,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_REMOTE_PORT",
    "DEFAULT_REMOTE_VIEW_PATH",
    "DEFAULT_TUNNEL_PORT",
    "CloudProvider",
    "CloudVmConfig",
    "Config",
    "ConfigManager",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "get_default_config_path",
    "read_toml_file",
    "write_toml_file",
]
