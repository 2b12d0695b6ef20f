# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""TOML configuration file reading and writing."""

import os
import tomllib
from pathlib import Path
from typing import Any

import platformdirs
import tomli_w

from cloudvm.exceptions import ConfigLoadError

CONFIG_FILE_NAME = "config.toml"
CONFIG_PATH_ENV = "CLOUDVM_CONFIG"


def get_default_config_path() -> Path:
    """Get the path of the configuration file.

    The CLOUDVM_CONFIG environment variable wins over the platform user
    config directory.

    Returns:
        Path to config.toml.
    """
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return platformdirs.user_config_path("cloudvm") / CONFIG_FILE_NAME


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigLoadError: If the file cannot be parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=e.lineno,
            column=e.colno,
        ) from e


def write_toml_file(path: Path, data: dict[str, Any]) -> str:  # pyright: ignore[reportExplicitAny]
    """Write a dictionary to a TOML file atomically.

    The content is written to a sibling temporary file and moved into
    place, so a concurrent reader or file watcher never sees a partial file.

    Args:
        path: Destination path. Parent directories are created.
        data: Data to serialize.

    Returns:
        The TOML text that was written.
    """
    text = tomli_w.dumps(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    _ = tmp_path.write_text(text, encoding="utf-8")
    _ = tmp_path.replace(path)
    return text
