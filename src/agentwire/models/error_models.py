"""
Error codes and exceptions for the chat transport.

Transport-level failures are normally reported through ``error`` events and
callbacks; the exceptions here are raised only for programmer errors
(e.g. sending on a socket that is not open) and for the orchestrator's
internal connection-attempt bookkeeping.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # WebSocket errors (6xxx)
    WS_CONNECTION_FAILED = "WS_6001"
    WS_MESSAGE_INVALID = "WS_6002"
    WS_NOT_CONNECTED = "WS_6003"
    WS_TIMEOUT = "WS_6004"
    WS_SEND_FAILED = "WS_6006"
    WS_RECONNECT_EXHAUSTED = "WS_6007"
    WS_SERVER_ERROR = "WS_6008"

    # Orchestration errors (65xx)
    SLOT_CONNECTION_FAILED = "WS_6501"
    SLOT_CIRCUIT_OPEN = "WS_6502"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"


#: Human-readable messages surfaced through ``error`` events
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.WS_CONNECTION_FAILED: "Connection error",
    ErrorCode.WS_MESSAGE_INVALID: "Invalid message payload",
    ErrorCode.WS_NOT_CONNECTED: "not connected",
    ErrorCode.WS_TIMEOUT: "Connection timeout",
    ErrorCode.WS_SEND_FAILED: "Failed to send message",
    ErrorCode.WS_RECONNECT_EXHAUSTED: "Max reconnect attempts reached",
    ErrorCode.WS_SERVER_ERROR: "Server error",
}

#: Codes for conditions a later attempt may recover from
RECOVERABLE_CODES = frozenset(
    {
        ErrorCode.WS_CONNECTION_FAILED,
        ErrorCode.WS_MESSAGE_INVALID,
        ErrorCode.WS_TIMEOUT,
        ErrorCode.WS_SEND_FAILED,
        ErrorCode.SLOT_CONNECTION_FAILED,
    }
)


class TransportErrorEvent(BaseModel):
    """Structured record of an error surfaced by the transport stack.

    Example:
    {
        "code": "WS_6004",
        "message": "Connection timeout",
        "recoverable": true,
        "timestamp": "2025-01-15T10:30:00+00:00",
        "details": {"url": "ws://localhost:8000/ws/chat/agent-1/chat1/"}
    }
    """

    code: ErrorCode
    message: str
    recoverable: bool = True
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: dict[str, Any] | None = None

    @classmethod
    def from_code(cls, code: ErrorCode, details: dict[str, Any] | None = None) -> TransportErrorEvent:
        """Build an event with the default message for ``code``."""
        return cls(
            code=code,
            message=ERROR_MESSAGES.get(code, code.value),
            recoverable=code in RECOVERABLE_CODES,
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return self.model_dump(mode="json", exclude_none=True)


class TransportError(RuntimeError):
    """Base class for errors raised by the transport stack."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        super().__init__(message)
        self.code = code


class TransportNotConnectedError(TransportError):
    """Raised when sending on a socket that is not open."""

    def __init__(self, message: str = "WebSocket is not connected"):
        super().__init__(message, ErrorCode.WS_NOT_CONNECTED)


class ConnectionAttemptError(TransportError):
    """A slot's connection attempt failed or timed out."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.SLOT_CONNECTION_FAILED):
        super().__init__(message, code)


__all__ = [
    "ERROR_MESSAGES",
    "RECOVERABLE_CODES",
    "ConnectionAttemptError",
    "ErrorCode",
    "TransportError",
    "TransportErrorEvent",
    "TransportNotConnectedError",
]
