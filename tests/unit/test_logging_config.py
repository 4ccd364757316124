"""Unit tests for logging_config.py: handlers, level parsing and log retention."""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from sharepoint_uploader.logging_config import configure_logging, parse_level, prune_logs


@pytest.fixture
def logger_name(request: pytest.FixtureRequest):
    """A throwaway logger name; handlers are closed after the test."""
    name = f"sharepoint_uploader_test.{request.node.name}"
    yield name
    target = logging.getLogger(name)
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()


def _touch_logs(directory: Path, count: int) -> list[Path]:
    paths = []
    for i in range(count):
        path = directory / f"SharePointUploader_20240101_0000{i:02d}.log"
        path.write_text("old run")
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
        paths.append(path)
    return paths


class TestParseLevel:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("INFO", logging.INFO),
            ("debug", logging.DEBUG),
            ("Information", logging.INFO),
            ("Verbose", logging.DEBUG),
            ("Warning", logging.WARNING),
            ("Fatal", logging.CRITICAL),
            ("nonsense", logging.INFO),
        ],
    )
    def test_level_names(self, name: str, expected: int) -> None:
        assert parse_level(name) == expected


class TestConfigureLogging:
    def test_writes_per_run_log_file(self, tmp_path: Path, logger_name: str) -> None:
        target = configure_logging("DEBUG", tmp_path / "Logs", 10, logger_name=logger_name)
        target.info("[test] hello; key:%s", "value")
        for handler in target.handlers:
            handler.flush()

        logs = list((tmp_path / "Logs").glob("SharePointUploader_*.log"))
        assert len(logs) == 1
        content = logs[0].read_text()
        assert "[INFO] [test] hello; key:value" in content
        assert target.level == logging.DEBUG

    def test_console_only_without_log_dir(self, logger_name: str) -> None:
        target = configure_logging("INFO", None, 10, logger_name=logger_name)

        assert len(target.handlers) == 1
        assert not isinstance(target.handlers[0], logging.FileHandler)

    def test_reconfiguring_replaces_handlers(self, tmp_path: Path, logger_name: str) -> None:
        configure_logging("INFO", None, 10, logger_name=logger_name)
        target = configure_logging("INFO", None, 10, logger_name=logger_name)

        assert len(target.handlers) == 1

    def test_unusable_log_dir_falls_back_to_console(
        self, tmp_path: Path, logger_name: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        blocker = tmp_path / "Logs"
        blocker.write_text("a file, not a directory")

        with caplog.at_level(logging.WARNING, logger=logger_name):
            target = configure_logging("INFO", blocker / "run", 10, logger_name=logger_name)

        assert len(target.handlers) == 1
        assert not isinstance(target.handlers[0], logging.FileHandler)
        assert "logging to console only" in caplog.text

    def test_prunes_old_logs(self, tmp_path: Path, logger_name: str) -> None:
        _touch_logs(tmp_path, 12)

        configure_logging("INFO", tmp_path, 10, logger_name=logger_name)

        assert len(list(tmp_path.glob("SharePointUploader_*.log"))) == 10


class TestPruneLogs:
    def test_keeps_newest(self, tmp_path: Path) -> None:
        paths = _touch_logs(tmp_path, 5)
        (tmp_path / "unrelated.log").write_text("keep me")

        prune_logs(tmp_path, 2)

        remaining = sorted(tmp_path.glob("SharePointUploader_*.log"))
        assert remaining == paths[-2:]
        assert (tmp_path / "unrelated.log").exists()

    def test_unlink_errors_are_ignored(self, tmp_path: Path) -> None:
        _touch_logs(tmp_path, 3)

        with patch.object(Path, "unlink", side_effect=PermissionError("locked")):
            prune_logs(tmp_path, 1)

        assert len(list(tmp_path.glob("SharePointUploader_*.log"))) == 3
