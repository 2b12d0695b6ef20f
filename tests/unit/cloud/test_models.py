from cloudvm.cloud import CloudVmState, TunnelStatus, VmStatus, build_remote_view_url, get_timestamp
from cloudvm.config import CloudProvider

QUERY = "autoconnect=true&resize=scale&reconnect=true&reconnect_delay=1000"


class TestBuildRemoteViewUrl:
    def test_without_password(self) -> None:
        url = build_remote_view_url(8080)

        assert url == f"http://localhost:8080/novnc/vnc.html?{QUERY}"
        assert "password" not in url

    def test_with_password(self) -> None:
        url = build_remote_view_url(9000, "hunter2")

        assert url == f"http://localhost:9000/novnc/vnc.html?{QUERY}&password=hunter2"

    def test_password_is_percent_encoded(self) -> None:
        url = build_remote_view_url(8080, "p&ss w/rd")

        assert url.endswith("&password=p%26ss%20w%2Frd")

    def test_empty_password_is_omitted(self) -> None:
        assert "password" not in build_remote_view_url(8080, "")

    def test_custom_path_gets_leading_slash(self) -> None:
        url = build_remote_view_url(8080, path="vnc.html")

        assert url.startswith("http://localhost:8080/vnc.html?")


class TestCloudVmState:
    def test_defaults(self) -> None:
        state = CloudVmState()

        assert state.status == VmStatus.UNKNOWN
        assert state.tunnel_status == TunnelStatus.OFF
        assert state.ip is None

    def test_to_dict_renders_enum_values(self) -> None:
        state = CloudVmState(
            status=VmStatus.RUNNING,
            provider=CloudProvider.GCP,
            server_id="desk-1",
            tunnel_status=TunnelStatus.RUNNING,
        )

        assert state.to_dict() == {
            "status": "running",
            "ip": None,
            "remote_view_url": None,
            "provider": "gcp",
            "server_id": "desk-1",
            "last_checked": None,
            "error": None,
            "tunnel_status": "running",
        }


class TestGetTimestamp:
    def test_is_utc_iso8601(self) -> None:
        timestamp = get_timestamp()

        assert timestamp.endswith("Z")
        assert "T" in timestamp
