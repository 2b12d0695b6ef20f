from pathlib import Path

import orjson
import pytest

from cloudvm.utils import create_logger, get_cloudvm_log_dir, get_cloudvm_log_file


def _entries(path: Path) -> list[dict[str, object]]:
    return [orjson.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CLOUDVM_DEBUG", raising=False)
    monkeypatch.delenv("CLOUDVM_LOG_LEVEL", raising=False)


class TestCreateLogger:
    def test_writes_json_lines(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "cloudvm.log"
        logger = create_logger(log_file=str(log_file))

        logger.info("vm_started", server_id="desk-1")

        [entry] = _entries(log_file)
        assert entry["event"] == "vm_started"
        assert entry["server_id"] == "desk-1"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_binds_context(self, tmp_path: Path) -> None:
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(log_file=str(log_file), command="start")

        logger.warning("operation_in_progress")

        [entry] = _entries(log_file)
        assert entry["command"] == "start"

    def test_filters_below_level(self, tmp_path: Path) -> None:
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(level="warning", log_file=str(log_file))

        logger.info("hidden")
        logger.error("shown")

        assert [e["event"] for e in _entries(log_file)] == ["shown"]

    def test_debug_env_overrides_level(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CLOUDVM_DEBUG", "1")
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(level="error", log_file=str(log_file))

        logger.debug("tunnel_output", line="hello")

        assert [e["event"] for e in _entries(log_file)] == ["tunnel_output"]

    def test_level_from_environment_when_not_given(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CLOUDVM_LOG_LEVEL", "error")
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(log_file=str(log_file))

        logger.warning("hidden")
        logger.error("shown")

        assert [e["event"] for e in _entries(log_file)] == ["shown"]

    def test_text_format(self, tmp_path: Path) -> None:
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(log_format="text", log_file=str(log_file))

        logger.info("polling_started", interval=30)

        text = log_file.read_text(encoding="utf-8")
        assert "polling_started" in text
        assert "interval=30" in text

    def test_rotates_when_size_exceeded(self, tmp_path: Path) -> None:
        log_file = tmp_path / "cloudvm.log"
        logger = create_logger(log_file=str(log_file), max_bytes=200, backup_count=2)

        for i in range(20):
            logger.info("tunnel_output", line=f"line {i}")

        assert log_file.exists()
        assert (tmp_path / "cloudvm.log.1").exists()
        assert not (tmp_path / "cloudvm.log.3").exists()


class TestLogPaths:
    def test_log_file_lives_in_log_dir(self) -> None:
        assert get_cloudvm_log_file().parent == get_cloudvm_log_dir()
        assert get_cloudvm_log_file().name == "cloudvm.log"
