import pytest

from cloudvm.config import CloudProvider, CloudVmConfig
from cloudvm.exceptions import NotConfiguredError
from cloudvm.tunnel import TunnelSettings, TunnelTarget


class TestTunnelTarget:
    def test_from_config(self) -> None:
        config = CloudVmConfig(
            provider=CloudProvider.GCP,
            api_token="t",
            server_id="desk-1",
            project_id="acme-dev",
            zone="europe-west1-b",
            tunnel_port=9000,
            remote_port=6080,
        )

        target = TunnelTarget.from_config(config)

        assert target == TunnelTarget(
            server_id="desk-1",
            zone="europe-west1-b",
            project_id="acme-dev",
            local_port=9000,
            remote_port=6080,
        )

    def test_from_config_reports_missing_fields(self) -> None:
        config = CloudVmConfig(provider=CloudProvider.GCP, api_token="t", server_id="desk-1")

        with pytest.raises(NotConfiguredError, match="serverId, zone, projectId") as exc_info:
            _ = TunnelTarget.from_config(config)

        assert exc_info.value.missing == ("zone", "project_id")

    def test_command_uses_custom_executable(self) -> None:
        target = TunnelTarget(
            server_id="desk-1",
            zone="us-central1-a",
            project_id="acme-dev",
            local_port=8080,
            remote_port=80,
        )

        command = target.command("/opt/google/bin/gcloud")

        assert command[0] == "/opt/google/bin/gcloud"
        assert command[1:3] == ("compute", "start-iap-tunnel")
        assert "--local-host-port=localhost:8080" in command


class TestTunnelSettings:
    def test_defaults(self) -> None:
        settings = TunnelSettings()

        assert settings.ready_marker == "Listening on port"
        assert settings.ready_timeout == 30.0
        assert settings.reconnect_delay == 3.0
