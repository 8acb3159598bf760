"""
Tests for logging setup — console level, quiet mode, transcript.
"""

import logging
from pathlib import Path

import pytest

from src.core.observability.logging_config import _parse_level, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _console(root: logging.Logger) -> logging.Handler:
    return next(h for h in root.handlers if not isinstance(h, logging.FileHandler))


class TestSetupLogging:
    def test_default_info_without_transcript(self):
        assert setup_logging(log_file="") is None
        root = logging.getLogger()
        assert _console(root).level == logging.INFO
        assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)

    def test_quiet_console_errors_only(self, tmp_path: Path):
        setup_logging(log_file=str(tmp_path / "t.log"), quiet=True)
        assert _console(logging.getLogger()).level == logging.ERROR

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("NMS_PROVISION_LOG_LEVEL", "debug")
        setup_logging(log_file="")
        assert _console(logging.getLogger()).level == logging.DEBUG

    def test_transcript_receives_debug(self, tmp_path: Path):
        transcript = tmp_path / "logs" / "run.log"
        assert setup_logging(log_file=str(transcript), quiet=True) == str(transcript)
        logging.getLogger("src.test").debug("detail line")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "detail line" in transcript.read_text()
        assert (transcript.stat().st_mode & 0o777) == 0o640

    def test_transcript_appended(self, tmp_path: Path):
        transcript = tmp_path / "run.log"
        transcript.write_text("previous run\n")
        setup_logging(log_file=str(transcript))
        logging.getLogger("src.test").info("next run")
        for handler in logging.getLogger().handlers:
            handler.flush()
        text = transcript.read_text()
        assert text.startswith("previous run\n")
        assert "next run" in text

    def test_unwritable_transcript_is_not_fatal(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert setup_logging(log_file=str(blocker / "run.log")) is None

    def test_parse_level(self):
        assert _parse_level("warning") == logging.WARNING
        assert _parse_level("nonsense", logging.INFO) == logging.INFO
        assert _parse_level(None, logging.INFO) == logging.INFO
