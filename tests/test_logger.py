"""Tests for logger.py: setup_logging() and JsonFormatter.

Covers:
- CLI mode logging (stderr handler, optional file handler)
- MCP mode logging (file handler only)
- Level precedence: debug > LOG_LEVEL > config file > mode default
- apply_configured_level and apply_configured_file after config load
- JSON formatter output
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from vault_sync.logger import (
    DEFAULT_MCP_LOG_FILE,
    JsonFormatter,
    apply_configured_file,
    apply_configured_level,
    resolve_level,
    setup_logging,
)


def _close_file_handlers(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("vault_sync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        """CLI mode passes StreamHandler(stderr) to basicConfig."""
        setup_logging(mode="cli")

        mock_basic.assert_called_once()
        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr

    @patch("vault_sync.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path):
        """MCP mode installs a single FileHandler and nothing on stdout/stderr."""
        log_file = tmp_path / "test-mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 1
            assert isinstance(handlers[0], logging.FileHandler)
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close_file_handlers(handlers)

    @patch("vault_sync.logger.logging.basicConfig")
    def test_mcp_mode_uses_log_file_env(self, mock_basic, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        setup_logging(mode="mcp")

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close_file_handlers(handlers)

    @patch("vault_sync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        """CLI mode with log_file creates both stderr and file handlers."""
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert [type(h) for h in handlers] == [
                logging.StreamHandler,
                logging.FileHandler,
            ]
        finally:
            _close_file_handlers(handlers)

    @patch("vault_sync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        """debug_format='json' sets JsonFormatter on handlers."""
        setup_logging(mode="cli", debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0].formatter, JsonFormatter)

    @patch("vault_sync.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic):
        """Non-DEBUG mode silences the file watching and asyncio loggers."""
        setup_logging(mode="cli")

        assert logging.getLogger("watchfiles").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING

    @patch("vault_sync.logger.logging.basicConfig")
    def test_config_level_used_without_env(self, mock_basic):
        setup_logging(mode="cli", level="error")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    def test_default_mcp_log_file(self):
        assert DEFAULT_MCP_LOG_FILE.endswith("vault-sync-mcp.log")


class TestResolveLevel:
    def test_mode_defaults(self):
        assert resolve_level("mcp") == logging.WARNING
        assert resolve_level("cli") == logging.INFO

    def test_env_beats_config(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level("cli", configured="DEBUG") == logging.ERROR

    def test_debug_beats_everything(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level("mcp", debug=True, configured="ERROR") == logging.DEBUG

    def test_unknown_name_falls_back_to_info(self):
        assert resolve_level("cli", configured="LOUD") == logging.INFO


class TestApplyConfiguredLevel:
    def test_sets_root_level(self):
        root = logging.getLogger()
        original = root.level
        try:
            apply_configured_level("cli", "ERROR")
            assert root.level == logging.ERROR
        finally:
            root.setLevel(original)

    def test_env_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        root = logging.getLogger()
        original = root.level
        try:
            apply_configured_level("cli", "ERROR")
            assert root.level == original
        finally:
            root.setLevel(original)

    def test_none_is_noop(self):
        root = logging.getLogger()
        original = root.level
        apply_configured_level("mcp", None)
        assert root.level == original


class TestApplyConfiguredFile:
    @pytest.fixture
    def root(self):
        root = logging.getLogger()
        original = list(root.handlers)
        yield root
        for handler in list(root.handlers):
            if handler not in original:
                root.removeHandler(handler)
                handler.close()
        for handler in original:
            if handler not in root.handlers:
                root.addHandler(handler)

    @staticmethod
    def _file_names(root):
        return [
            h.baseFilename
            for h in root.handlers
            if isinstance(h, logging.FileHandler)
        ]

    def test_cli_adds_file(self, root, tmp_path):
        target = tmp_path / "configured.log"
        apply_configured_file("cli", str(target))
        assert str(target) in self._file_names(root)

    def test_mcp_replaces_default_file(self, root, tmp_path):
        default = logging.FileHandler(tmp_path / "default.log")
        root.addHandler(default)
        target = tmp_path / "configured.log"

        apply_configured_file("mcp", str(target))

        names = self._file_names(root)
        assert str(target) in names
        assert default.baseFilename not in names

    def test_env_wins(self, root, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "env.log"))
        before = list(root.handlers)
        apply_configured_file("cli", str(tmp_path / "configured.log"))
        assert root.handlers == before

    def test_none_is_noop(self, root):
        before = list(root.handlers)
        apply_configured_file("mcp", None)
        assert root.handlers == before


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_output(self):
        """Formatted output is valid JSON with required keys."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        record = logging.LogRecord(
            name="vault_sync.sync.engine",
            level=logging.INFO,
            pathname="engine.py",
            lineno=1,
            msg="Copy %s",
            args=("a.md",),
            exc_info=None,
        )

        data = json.loads(formatter.format(record))

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "vault_sync.sync.engine"
        assert data["msg"] == "Copy a.md"
        assert "exc" not in data

    def test_includes_exception(self):
        """Exception info is included in 'exc' key."""
        formatter = JsonFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="An error occurred",
            args=(),
            exc_info=exc_info,
        )

        data = json.loads(formatter.format(record))
        assert "ValueError: test error" in data["exc"]
