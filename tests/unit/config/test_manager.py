from pathlib import Path

import anyio
import pytest
import tomli_w
from fakes import wait_until

from cloudvm.config import CloudProvider, Config, ConfigManager, LogFormat
from cloudvm.exceptions import ConfigLoadError

pytestmark = pytest.mark.anyio


class TestLoad:
    async def test_loads_cloud_section(self, config_manager: ConfigManager) -> None:
        cloud = config_manager.cloud

        assert cloud is not None
        assert cloud.provider == CloudProvider.GCP
        assert cloud.server_id == "desk-1"
        assert cloud.remote_port == 80
        assert cloud.is_valid

    async def test_missing_file_yields_defaults(self, empty_config_manager: ConfigManager) -> None:
        assert empty_config_manager.cloud is None
        assert empty_config_manager.config.logging.format == LogFormat.JSON

    async def test_invalid_value_raises_config_load_error(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        _ = path.write_text(
            tomli_w.dumps({"cloud": {"tunnel_port": 70000}}), encoding="utf-8"
        )

        with pytest.raises(ConfigLoadError, match="Invalid configuration") as exc_info:
            _ = ConfigManager(path).load()

        assert exc_info.value.path == path

    async def test_invalid_cloud_section_is_not_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        _ = path.write_text(tomli_w.dumps({"cloud": {"provider": "gcp"}}), encoding="utf-8")
        manager = ConfigManager(path)
        _ = manager.load()

        assert manager.cloud is not None
        assert not manager.cloud.is_valid

    async def test_reload_reports_unchanged_content(self, config_manager: ConfigManager) -> None:
        assert config_manager.reload() is False


class TestUpdateCloud:
    async def test_persists_and_notifies(self, config_manager: ConfigManager) -> None:
        received: list[Config] = []

        async def listener(config: Config) -> None:
            received.append(config)

        _ = config_manager.subscribe(listener)

        config = await config_manager.update_cloud(api_token="minted")

        assert received == [config]
        assert config.cloud is not None
        assert config.cloud.api_token == "minted"
        assert config.cloud.server_id == "desk-1"
        reloaded = ConfigManager(config_manager.path)
        _ = reloaded.load()
        assert reloaded.cloud == config.cloud

    async def test_own_write_is_not_seen_as_change(self, config_manager: ConfigManager) -> None:
        _ = await config_manager.update_cloud(zone="us-east1-b")

        assert config_manager.reload() is False

    async def test_creates_cloud_section(self, empty_config_manager: ConfigManager) -> None:
        config = await empty_config_manager.update_cloud(provider="gcp", api_token="t")

        assert config.cloud is not None
        assert config.cloud.is_valid
        assert empty_config_manager.path.exists()

    async def test_unsubscribe_stops_notifications(self, config_manager: ConfigManager) -> None:
        received: list[Config] = []

        async def listener(config: Config) -> None:
            received.append(config)

        unsubscribe = config_manager.subscribe(listener)
        unsubscribe()
        unsubscribe()

        _ = await config_manager.update_cloud(zone="us-east1-b")

        assert received == []

    async def test_failing_listener_does_not_stop_others(
        self, config_manager: ConfigManager
    ) -> None:
        received: list[Config] = []

        async def broken(_config: Config) -> None:
            msg = "listener exploded"
            raise RuntimeError(msg)

        async def listener(config: Config) -> None:
            received.append(config)

        _ = config_manager.subscribe(broken)
        _ = config_manager.subscribe(listener)

        _ = await config_manager.update_cloud(zone="us-east1-b")

        assert len(received) == 1


class TestWatch:
    async def test_external_edit_notifies_listeners(self, config_manager: ConfigManager) -> None:
        received: list[Config] = []

        async def listener(config: Config) -> None:
            received.append(config)

        _ = config_manager.subscribe(listener)
        stop_event = anyio.Event()

        async with anyio.create_task_group() as tg:
            tg.start_soon(config_manager.watch, stop_event)

            with anyio.fail_after(20):
                attempt = 0
                while not received:
                    attempt += 1
                    data = {"cloud": {"provider": "gcp", "api_token": f"edited-{attempt}"}}
                    _ = config_manager.path.write_text(tomli_w.dumps(data), encoding="utf-8")
                    with anyio.move_on_after(2):
                        await wait_until(lambda: bool(received), timeout=5)

            stop_event.set()

        cloud = received[-1].cloud
        assert cloud is not None
        assert cloud.api_token.startswith("edited-")
