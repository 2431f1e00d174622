"""
Pydantic models for the chat transport.

Covers the canonical inbound message delivered to callers, the per-slot model
configuration, query/response correlation records, and the outbound wire
payloads built by the clients.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agentwire.core.constants import (
    MESSAGE_SOURCE,
    MSG_TYPE_SESSION_INIT,
    MSG_TYPE_UI,
    MSG_TYPE_USER,
)

MessageType = Literal["user", "bot_response", "system_message", "ui"]


def utc_now_iso() -> str:
    """Current wall-clock time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class ModelMetadata(BaseModel):
    """Model settings a server attached to a message."""

    model_config = ConfigDict(protected_namespaces=())

    model: str | None = None
    temperature: float | None = None
    prompt: str | None = None


class CanonicalMessage(BaseModel):
    """Normalized chat message delivered to callers.

    ``content`` is non-empty for every type except ``ui``; ``ui`` messages
    carry their widget kind in ``ui_kind`` instead.
    """

    model_config = ConfigDict(protected_namespaces=())

    type: MessageType
    content: str = ""
    timestamp: str = Field(default_factory=utc_now_iso)
    id: str | None = None
    session_id: str | None = None
    correlation_id: str | None = None
    model_metadata: ModelMetadata | None = None
    ui_kind: str | None = None
    source: str = MESSAGE_SOURCE

    @model_validator(mode="after")
    def validate_content(self) -> CanonicalMessage:
        """Enforce the content/ui_kind invariants."""
        if self.type == MSG_TYPE_UI:
            if not self.ui_kind:
                raise ValueError("ui messages require a ui_kind")
        elif not self.content:
            raise ValueError(f"{self.type} messages require non-empty content")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping unset optional fields."""
        return self.model_dump(exclude_none=True)


class SlotConfig(BaseModel):
    """Model configuration bound to one comparison slot."""

    model_config = ConfigDict(protected_namespaces=(), frozen=True)

    model: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_length: int | None = Field(default=None, gt=0)
    system_prompt: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the ``config`` object the chat server expects."""
        wire: dict[str, Any] = {
            "response_model": self.model,
            "temperature": self.temperature,
            "system_prompt": self.system_prompt,
        }
        if self.max_length is not None:
            wire["max_length"] = self.max_length
        return wire


class QueryRecord(BaseModel):
    """An outgoing user query, tagged for response correlation."""

    correlation_id: str
    content: str
    timestamp: str = Field(default_factory=utc_now_iso)
    config: SlotConfig


class ResponseRecord(BaseModel):
    """An inbound response associated with an issued query."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    correlation_id: str
    content: str
    timestamp: str
    latency_ms: float | None = None
    model_metadata: ModelMetadata | None = None


class OutboundMessage(BaseModel):
    """Outbound chat payload."""

    type: str = MSG_TYPE_USER
    content: str | None = None
    timestamp: str | None = Field(default_factory=utc_now_iso)
    session_id: str | None = None
    correlation_id: str | None = None
    config: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Convert to the JSON-ready dictionary sent over the socket."""
        return self.model_dump(exclude_none=True)


class SessionInitMessage(BaseModel):
    """Announces an existing session id to the server."""

    type: Literal["session_init"] = MSG_TYPE_SESSION_INIT
    session_id: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump()


class ChatSessionSummary(BaseModel):
    """One entry of the live chat-sessions feed."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | int
    customer: str = ""
    email: str | None = None
    last_message: str = Field(default="", alias="lastMessage")
    time: str = ""
    status: str = ""
    agent: str = ""
    satisfaction: str = ""
    priority: str = ""
    duration: str = ""
    channel: str = ""
    agent_type: Literal["human", "ai"] | None = Field(default=None, alias="agentType")
    handoff_count: int = Field(default=0, alias="handoffCount")
    topic: list[str] = Field(default_factory=list)
