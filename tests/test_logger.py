"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from task_mirror.logger import JsonFormatter, resolve_level, setup_logging

# ---------------------------------------------------------------------------
# Level resolution
# ---------------------------------------------------------------------------


class TestResolveLevel:
    def test_debug_overrides_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level(debug=True) == logging.DEBUG

    def test_env_beats_config(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level(level="DEBUG") == logging.ERROR

    def test_config_used_without_env(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert resolve_level(level="warning") == logging.WARNING

    def test_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert resolve_level() == logging.INFO

    def test_unknown_name_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        assert resolve_level() == logging.INFO


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("task_mirror.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        mock_basic.assert_called_once()
        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("task_mirror.logger.logging.basicConfig")
    def test_log_file_adds_named_file_handler(self, mock_basic, tmp_path):
        setup_logging(log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        assert "%(name)s" in file_handlers[0].formatter._fmt
        assert "%(name)s" not in handlers[0].formatter._fmt
        for h in file_handlers:
            h.close()

    @patch("task_mirror.logger.logging.basicConfig")
    def test_json_format_applies_to_every_handler(self, mock_basic, tmp_path):
        setup_logging(log_file=str(tmp_path / "cli.log"), log_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)
        for h in handlers:
            if isinstance(h, logging.FileHandler):
                h.close()

    @patch("task_mirror.logger.logging.basicConfig")
    def test_unknown_format_rejected(self, mock_basic):
        with pytest.raises(ValueError, match="Unknown log format"):
            setup_logging(log_format="xml")
        mock_basic.assert_not_called()

    @patch("task_mirror.logger.logging.basicConfig")
    def test_http_stack_silenced(self, _mock_basic, monkeypatch):
        """Non-DEBUG mode silences urllib3/requests loggers."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_output(self):
        """Formatted output is valid JSON with required keys."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        record = logging.LogRecord(
            name="task_mirror.sync.engine",
            level=logging.INFO,
            pathname="engine.py",
            lineno=1,
            msg="Drain finished: %d applied",
            args=(3,),
            exc_info=None,
        )

        data = json.loads(formatter.format(record))

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "task_mirror.sync.engine"
        assert data["msg"] == "Drain finished: 3 applied"
        assert "exc" not in data

    def test_includes_exception(self):
        formatter = JsonFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="failed",
            args=(),
            exc_info=exc_info,
        )

        data = json.loads(formatter.format(record))
        assert "ValueError: boom" in data["exc"]
