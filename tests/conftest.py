"""Shared test fixtures for cloudvm tests."""

from pathlib import Path

import pytest
import tomli_w

from cloudvm.config import ConfigManager

CLOUD_SECTION: dict[str, object] = {
    "provider": "gcp",
    "api_token": "stale-token",
    "server_id": "desk-1",
    "project_id": "acme-dev",
    "zone": "us-central1-a",
    "tunnel_port": 8080,
    "vnc_password": "hunter2",
}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a complete cloud configuration and return its path."""
    path = tmp_path / "config" / "config.toml"
    path.parent.mkdir()
    _ = path.write_text(tomli_w.dumps({"cloud": CLOUD_SECTION}), encoding="utf-8")
    return path


@pytest.fixture
def config_manager(config_path: Path) -> ConfigManager:
    """Return a loaded manager for the complete cloud configuration."""
    manager = ConfigManager(config_path)
    _ = manager.load()
    return manager


@pytest.fixture
def empty_config_manager(tmp_path: Path) -> ConfigManager:
    """Return a loaded manager whose configuration file does not exist."""
    manager = ConfigManager(tmp_path / "missing" / "config.toml")
    _ = manager.load()
    return manager
