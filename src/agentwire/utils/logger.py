"""
Logging setup for agentwire using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format for debugging
- {log_dir}/exchanges.jsonl: JSON format for query/response exchanges (optional)
- {log_dir}/errors.jsonl: JSON format for error tracking (optional)

File logging is enabled only when ``Settings.log_dir`` is configured.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import uuid

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pythonjsonlogger import json as jsonlogger

from agentwire.core.constants import (
    COMPONENT_ID_LENGTH,
    LOG_BACKUP_COUNT_ERRORS,
    LOG_BACKUP_COUNT_EXCHANGES,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    get_settings,
)

# PII Redaction patterns
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(?:\d{4}[- ]?){3}\d{4}\b", "[CARD]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]


@dataclass
class ExchangeRecord:
    """Structured representation of one query/response exchange for logging."""

    query: str
    response: str
    slot_index: int | None = None
    correlation_id: str = ""
    model: str | None = None
    latency_ms: float | None = None
    component_id: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class ExchangeFilter(logging.Filter):
    """Filter to allow all INFO level logs for exchanges"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.INFO


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log levels and standardizes format.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    # ANSI color codes
    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    # We only color the level part: [LEVEL]
    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            level_fmt = f"{color}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")
        message = f"{record.asctime} {level_fmt} {record.name} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def _add_file_handlers(logger: logging.Logger, log_dir: Path) -> None:
    """Attach rotating JSON-lines handlers for exchanges and errors."""
    log_dir.mkdir(parents=True, exist_ok=True)

    exchange_handler = logging.handlers.RotatingFileHandler(
        log_dir / "exchanges.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_EXCHANGES,
        encoding="utf-8",
    )
    exchange_handler.setLevel(logging.INFO)
    exchange_handler.addFilter(ExchangeFilter())
    exchange_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(message)s %(component_id)s %(slot)s %(correlation_id)s",
            timestamp=True,
        )
    )
    logger.addHandler(exchange_handler)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / "errors.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_ERRORS,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorFilter())
    error_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            timestamp=True,
        )
    )
    logger.addHandler(error_handler)


def setup_logging(
    name: str = "agentwire",
    debug: bool | None = None,
    log_dir: Path | None = None,
) -> logging.Logger:
    """
    Set up logging with a console handler and optional JSON file handlers.

    Args:
        name: Logger name
        debug: Enable debug logging (overrides settings and the DEBUG env var)
        log_dir: Directory for JSON log files (defaults to Settings.log_dir)

    Returns:
        Configured logger instance
    """
    settings = get_settings()

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []

    if debug is None:
        debug = settings.debug or os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    if log_dir is None:
        log_dir = settings.log_dir
    if log_dir is not None:
        _add_file_handlers(logger, Path(log_dir))

    return logger


class ChatLogger:
    """
    High-level logging interface for agentwire.
    Wraps standard Python logging with convenience methods.
    """

    def __init__(self, name: str = "agentwire"):
        self.logger = setup_logging(name)
        self.component_id = str(uuid.uuid4())[:COMPONENT_ID_LENGTH]

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Tag every record with the component id."""
        kwargs.setdefault("component_id", self.component_id)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        """Debug level logging"""
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Info level logging"""
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Warning level logging"""
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def _should_log_content(self) -> bool:
        """Check if content logging is enabled via settings."""
        try:
            return bool(get_settings().enable_content_logging)
        except ValueError:
            # Invalid configuration: never leak content
            return False

    def _redact_content(self, text: str) -> str:
        """Redact PII from text using defined patterns."""
        if not text:
            return text

        redacted = text
        for pattern, replacement in REDACTION_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted)
        return redacted

    def _preview(self, text: str) -> str:
        preview = self._redact_content(text[:LOG_PREVIEW_LENGTH].replace("\n", " "))
        if len(text) > LOG_PREVIEW_LENGTH:
            preview += "..."
        return preview

    def log_exchange(
        self,
        query: str,
        response: str,
        slot_index: int | None = None,
        correlation_id: str = "",
        model: str | None = None,
        latency_ms: float | None = None,
    ) -> None:
        """
        Log a correlated query/response exchange securely.
        """
        exchange = ExchangeRecord(
            query=query,
            response=response,
            slot_index=slot_index,
            correlation_id=correlation_id,
            model=model,
            latency_ms=latency_ms,
            component_id=self.component_id,
        )

        should_log_content = self._should_log_content()
        if should_log_content:
            query_preview = self._preview(exchange.query)
            response_preview = self._preview(exchange.response)
        else:
            query_preview = "[HIDDEN]"
            response_preview = "[HIDDEN]"

        msg_parts = [f"Query: {query_preview} → Response: {response_preview}"]
        if exchange.model:
            msg_parts.append(f"[{exchange.model}]")
        if exchange.latency_ms is not None:
            msg_parts.append(f"[{exchange.latency_ms:.0f}ms]")

        extra_data: dict[str, Any] = {
            "exchange": True,
            "timestamp": exchange.timestamp,
            "slot": exchange.slot_index,
            "correlation_id": exchange.correlation_id,
            "chars_query": len(exchange.query),
            "chars_response": len(exchange.response),
            "content_logging": should_log_content,
        }
        if exchange.latency_ms is not None:
            extra_data["ms"] = int(exchange.latency_ms)

        self.logger.info(" ".join(msg_parts), extra=self._enrich_context(extra_data))


# Global logger instance
logger = ChatLogger()
