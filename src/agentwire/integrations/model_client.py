"""Correlated chat client bound to one model-comparison slot.

Every outgoing query gets a fresh correlation id and carries the slot's model
configuration; inbound responses are linked back to the query they answer.
"""

from __future__ import annotations

import time
import uuid

from collections.abc import Callable, Mapping
from typing import Any

from agentwire.integrations.endpoints import build_auth_headers, build_chat_url
from agentwire.integrations.normalizer import ChatProtocolClient
from agentwire.integrations.transport import WebSocketTransport
from agentwire.models.chat_models import (
    CanonicalMessage,
    OutboundMessage,
    QueryRecord,
    ResponseRecord,
    SlotConfig,
)
from agentwire.utils.logger import logger

QuerySentCallback = Callable[[QueryRecord], None]
ResponseReceivedCallback = Callable[[ResponseRecord], None]

# Canonical types that never count as a response to a query
_NON_RESPONSE_TYPES = frozenset({"system_message", "user"})


class ModelChatClient:
    """Chat client for a single slot with query/response correlation.

    Only the most recently issued query is remembered. A response whose
    payload echoes a correlation id is attributed to that id; any other
    response is attributed to the current query.
    """

    def __init__(self, chat: ChatProtocolClient, config: SlotConfig, slot_index: int):
        """Initialize the client.

        Args:
            chat: Protocol client owning this slot's connection
            config: Model configuration used for outgoing queries
            slot_index: Zero-based slot position
        """
        self._chat = chat
        self._config = config
        self.slot_index = slot_index

        self._current_query: QueryRecord | None = None
        self._issued_at: float | None = None
        self._on_message: Callable[[CanonicalMessage], None] | None = None
        self._on_query_sent: QuerySentCallback | None = None
        self._on_response_received: ResponseReceivedCallback | None = None

        chat.on(on_message=self._handle_message)

    @classmethod
    def create(
        cls,
        agent_id: str,
        config: SlotConfig,
        slot_index: int,
        *,
        base_url: str | None = None,
        auth_token: str | None = None,
    ) -> ModelChatClient:
        """Build a client connected to the slot's own endpoint (``.../chat{n}/``)."""
        transport = WebSocketTransport(build_chat_url(agent_id, slot_index, base_url))
        headers = build_auth_headers(auth_token)
        if headers:
            transport.set_auth_headers(headers)
        return cls(ChatProtocolClient(transport), config, slot_index)

    @property
    def chat(self) -> ChatProtocolClient:
        return self._chat

    @property
    def current_query(self) -> QueryRecord | None:
        return self._current_query

    @property
    def session_id(self) -> str | None:
        return self._chat.session_id

    def on(self, **handlers: Callable[..., None] | None) -> None:
        """Register ChatProtocolClient handlers (merge semantics)."""
        if "on_message" in handlers:
            self._on_message = handlers.pop("on_message")
        if handlers:
            self._chat.on(**handlers)

    def set_history_callbacks(
        self,
        on_query_sent: QuerySentCallback | None,
        on_response_received: ResponseReceivedCallback | None,
    ) -> None:
        self._on_query_sent = on_query_sent
        self._on_response_received = on_response_received

    # ------------------------------------------------------------------
    # Connection delegation
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await self._chat.connect()

    async def disconnect(self) -> None:
        await self._chat.disconnect()

    def is_connected(self) -> bool:
        return self._chat.is_connected()

    def set_auth_headers(self, headers: Mapping[str, str]) -> None:
        self._chat.set_auth_headers(headers)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, config: SlotConfig) -> None:
        """Replace the configuration used by subsequent queries."""
        self._config = config

    def get_config(self) -> SlotConfig:
        return self._config

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, content: str) -> QueryRecord:
        """Issue a query and make it the current one.

        ``on_query_sent`` fires before the payload is written so callers can
        render the query optimistically.

        Raises:
            TransportNotConnectedError: If the slot's socket is not open.
        """
        self._chat.transport.ensure_connected()

        query = QueryRecord(correlation_id=uuid.uuid4().hex, content=content, config=self._config)
        self._current_query = query
        self._issued_at = time.monotonic()
        logger.debug(f"Slot {self.slot_index}: query {query.correlation_id} issued")

        if self._on_query_sent:
            self._on_query_sent(query)

        payload = OutboundMessage(
            content=content,
            timestamp=query.timestamp,
            session_id=self._chat.session_id,
            correlation_id=query.correlation_id,
            config=query.config.to_wire(),
        )
        await self._chat.send(payload.to_wire())
        return query

    async def send(self, data: Mapping[str, Any]) -> None:
        await self._chat.send(data)

    def _handle_message(self, message: CanonicalMessage) -> None:
        if message.content and message.type not in _NON_RESPONSE_TYPES:
            self._record_response(message)

        if self._on_message:
            self._on_message(message)

    def _record_response(self, message: CanonicalMessage) -> None:
        query = self._current_query
        correlation_id = message.correlation_id or (query.correlation_id if query else None)
        if correlation_id is None:
            return

        matched = query if query is not None and query.correlation_id == correlation_id else None
        latency_ms = None
        if matched is not None and self._issued_at is not None:
            latency_ms = (time.monotonic() - self._issued_at) * 1000

        response = ResponseRecord(
            id=message.id or uuid.uuid4().hex,
            correlation_id=correlation_id,
            content=message.content,
            timestamp=message.timestamp,
            latency_ms=latency_ms,
            model_metadata=message.model_metadata,
        )

        logger.log_exchange(
            query=matched.content if matched else "",
            response=response.content,
            slot_index=self.slot_index,
            correlation_id=correlation_id,
            model=(matched.config.model if matched else None),
            latency_ms=latency_ms,
        )

        if self._on_response_received:
            self._on_response_received(response)
