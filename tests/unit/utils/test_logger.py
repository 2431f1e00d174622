"""Tests for logger module.

Tests logging configuration, filters, redaction and exchange logging.
"""

from __future__ import annotations

import json
import logging

from pathlib import Path
from unittest.mock import patch

import pytest

from agentwire.utils.logger import (
    ChatLogger,
    ColoredConsoleFormatter,
    ErrorFilter,
    ExchangeFilter,
    ExchangeRecord,
    setup_logging,
)


def make_record(level: int, msg: str = "test") -> logging.LogRecord:
    return logging.LogRecord(name="test", level=level, pathname="", lineno=0, msg=msg, args=(), exc_info=None)


class TestExchangeRecord:
    """Tests for ExchangeRecord dataclass."""

    def test_defaults(self) -> None:
        """Test basic ExchangeRecord creation."""
        record = ExchangeRecord(query="hello", response="hi there")

        assert record.slot_index is None
        assert record.correlation_id == ""
        assert record.latency_ms is None
        assert record.timestamp


class TestFilters:
    """Tests for handler filters."""

    def test_exchange_filter(self) -> None:
        """Test the exchange filter passes INFO and above."""
        exchange_filter = ExchangeFilter()

        assert exchange_filter.filter(make_record(logging.INFO)) is True
        assert exchange_filter.filter(make_record(logging.ERROR)) is True
        assert exchange_filter.filter(make_record(logging.DEBUG)) is False

    def test_error_filter(self) -> None:
        """Test the error filter passes ERROR and above only."""
        error_filter = ErrorFilter()

        assert error_filter.filter(make_record(logging.ERROR)) is True
        assert error_filter.filter(make_record(logging.CRITICAL)) is True
        assert error_filter.filter(make_record(logging.WARNING)) is False


class TestColoredConsoleFormatter:
    """Tests for the console formatter."""

    def test_format_includes_level_and_name(self) -> None:
        """Test the formatted line carries the colored level and logger name."""
        line = ColoredConsoleFormatter().format(make_record(logging.WARNING, "careful"))

        assert "[WARNING]" in line
        assert "test - careful" in line
        assert ColoredConsoleFormatter.YELLOW in line


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_only_without_log_dir(self) -> None:
        """Test no file handlers are attached without a log directory."""
        logger = setup_logging("agentwire.test.console", debug=True)

        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.DEBUG

    def test_file_handlers_with_log_dir(self, tmp_path: Path) -> None:
        """Test exchange and error logs are written as JSON lines."""
        logger = setup_logging("agentwire.test.files", debug=False, log_dir=tmp_path)

        logger.info("exchange happened", extra={"component_id": "abc", "slot": 1, "correlation_id": "c-1"})
        logger.error("something broke")
        for handler in logger.handlers:
            handler.flush()

        exchanges = (tmp_path / "exchanges.jsonl").read_text().strip().splitlines()
        errors = (tmp_path / "errors.jsonl").read_text().strip().splitlines()

        assert len(logger.handlers) == 3
        assert json.loads(exchanges[0])["message"] == "exchange happened"
        assert json.loads(exchanges[0])["correlation_id"] == "c-1"
        assert len(errors) == 1
        assert json.loads(errors[0])["message"] == "something broke"

        for handler in logger.handlers:
            handler.close()


class TestChatLogger:
    """Tests for the ChatLogger wrapper."""

    def test_component_id(self) -> None:
        """Test every ChatLogger gets a short component id."""
        chat_logger = ChatLogger("agentwire.test.component")

        assert len(chat_logger.component_id) == 8

    def test_redact_content(self) -> None:
        """Test PII patterns are masked."""
        chat_logger = ChatLogger("agentwire.test.redact")

        redacted = chat_logger._redact_content("mail ada@example.com card 4111 1111 1111 1111 password: hunter2")

        assert "[EMAIL]" in redacted
        assert "[CARD]" in redacted
        assert "[REDACTED]" in redacted
        assert "hunter2" not in redacted

    def test_log_exchange_hides_content_by_default(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test exchange content is hidden unless content logging is enabled."""
        chat_logger = ChatLogger("agentwire.test.hidden")

        with caplog.at_level(logging.INFO, logger="agentwire.test.hidden"):
            chat_logger.log_exchange("hello", "hi there", slot_index=0, correlation_id="c-1", latency_ms=12.5)

        record = caplog.records[-1]
        assert "[HIDDEN]" in record.getMessage()
        assert "hello" not in record.getMessage()
        assert "[13ms]" in record.getMessage() or "[12ms]" in record.getMessage()
        assert record.slot == 0  # type: ignore[attr-defined]
        assert record.correlation_id == "c-1"  # type: ignore[attr-defined]
        assert record.content_logging is False  # type: ignore[attr-defined]

    def test_log_exchange_with_content_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test enabled content logging shows redacted previews."""
        chat_logger = ChatLogger("agentwire.test.visible")

        with (
            patch.object(chat_logger, "_should_log_content", return_value=True),
            caplog.at_level(logging.INFO, logger="agentwire.test.visible"),
        ):
            chat_logger.log_exchange("contact ada@example.com", "hi there", model="gpt-4o")

        message = caplog.records[-1].getMessage()
        assert "[EMAIL]" in message
        assert "hi there" in message
        assert "[gpt-4o]" in message

    def test_should_log_content_follows_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the content-logging switch is read from settings."""
        from agentwire.core.constants import clear_settings_cache

        chat_logger = ChatLogger("agentwire.test.settings")
        assert chat_logger._should_log_content() is False

        monkeypatch.setenv("ENABLE_CONTENT_LOGGING", "true")
        clear_settings_cache()

        assert chat_logger._should_log_content() is True
