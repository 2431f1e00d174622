"""
Models Module - Data Models and Type Definitions
=================================================

Provides Pydantic models for type safety and wire serialization.

Modules:
    chat_models: Canonical message, slot configuration, query/response records,
        outbound payloads and chat-session summaries
    error_models: Error codes, structured error events and transport exceptions
"""

from agentwire.models.chat_models import (
    CanonicalMessage,
    ChatSessionSummary,
    ModelMetadata,
    OutboundMessage,
    QueryRecord,
    ResponseRecord,
    SessionInitMessage,
    SlotConfig,
)
from agentwire.models.error_models import (
    ConnectionAttemptError,
    ErrorCode,
    TransportError,
    TransportErrorEvent,
    TransportNotConnectedError,
)

__all__ = [
    "CanonicalMessage",
    "ChatSessionSummary",
    "ConnectionAttemptError",
    "ErrorCode",
    "ModelMetadata",
    "OutboundMessage",
    "QueryRecord",
    "ResponseRecord",
    "SessionInitMessage",
    "SlotConfig",
    "TransportError",
    "TransportErrorEvent",
    "TransportNotConnectedError",
]
