"""Tests for error log file handler."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ipa_signer.observability import error_log_file
from ipa_signer.observability.error_log_file import (
    get_error_log_handler,
    log_stage_error,
    setup_error_log_file,
)


@pytest.fixture
def mock_config(tmp_path: Path):
    """Create a mock config with error log settings."""
    config = MagicMock()
    config.error_log_file_enabled = True
    config.error_log_file_path = str(tmp_path / "logs" / "errors.log")
    config.error_log_level = "WARNING"
    config.error_log_max_bytes = 1024 * 1024
    config.error_log_backup_count = 3
    return config


@pytest.fixture(autouse=True)
def cleanup_handlers(monkeypatch):
    """Reset the module handler and detach file handlers after each test."""
    monkeypatch.setattr(error_log_file, "_error_file_handler", None)
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if hasattr(handler, "baseFilename") and "errors.log" in str(handler.baseFilename):
            root_logger.removeHandler(handler)
            handler.close()


class TestSetupErrorLogFile:
    def test_creates_log_file_and_directory(self, mock_config, tmp_path):
        handler = setup_error_log_file(mock_config)

        assert handler is not None
        assert (tmp_path / "logs").is_dir()
        assert get_error_log_handler() is handler

    def test_returns_none_when_disabled(self, mock_config):
        mock_config.error_log_file_enabled = False

        assert setup_error_log_file(mock_config) is None

    def test_is_idempotent(self, mock_config):
        first = setup_error_log_file(mock_config)
        second = setup_error_log_file(mock_config)

        assert first is second
        assert logging.getLogger().handlers.count(first) == 1

    def test_sets_correct_log_level(self, mock_config):
        mock_config.error_log_level = "ERROR"

        handler = setup_error_log_file(mock_config)

        assert handler.level == logging.ERROR

    def test_handler_has_correct_formatter(self, mock_config):
        handler = setup_error_log_file(mock_config)

        format_str = handler.formatter._fmt
        assert "%(asctime)s" in format_str
        assert "%(name)s" in format_str
        assert "%(filename)s" in format_str
        assert "%(lineno)d" in format_str


class TestLogStageError:
    def test_logs_stage_and_error_type(self, caplog):
        caplog.set_level(logging.ERROR)

        log_stage_error("signing", ValueError("bad"))

        record = next(r for r in caplog.records if "stage=signing" in r.getMessage())
        assert record.name == "ipa_signer.pipeline.signing"
        assert "error_type=ValueError" in record.getMessage()

    def test_includes_suffix_and_extra(self, caplog):
        caplog.set_level(logging.ERROR)

        log_stage_error("inspecting", "no bundle", suffix="1700000000000_abc123", extra={"kind": "x"})

        messages = [r.getMessage() for r in caplog.records]
        assert any("suffix=1700000000000_abc123" in m and "kind=x" in m for m in messages)

    def test_writes_errors_to_file(self, mock_config, tmp_path):
        handler = setup_error_log_file(mock_config)

        log_stage_error("publishing", "Test error message", suffix="1700000000000_abc123")
        handler.flush()

        content = (tmp_path / "logs" / "errors.log").read_text()
        assert "Test error message" in content
        assert "stage=publishing" in content
