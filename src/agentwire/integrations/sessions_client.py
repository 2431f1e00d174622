"""Client for the live chat-sessions feed.

Operators watching many conversations subscribe to a single socket that
pushes the session list, per-session updates and the chat messages of those
sessions. Chat messages go through the same normalization and duplicate
suppression as any other chat client.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from agentwire.core.constants import get_settings
from agentwire.integrations.endpoints import build_auth_headers, build_sessions_url
from agentwire.integrations.normalizer import ChatProtocolClient
from agentwire.integrations.transport import WebSocketTransport
from agentwire.models.chat_models import ChatSessionSummary, utc_now_iso
from agentwire.utils.logger import logger

EVENT_SESSIONS = "sessions"
EVENT_SESSION_UPDATE = "session_update"


class ChatSessionsClient:
    """Sessions feed client built on WebSocketTransport and ChatProtocolClient."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        transport: WebSocketTransport | None = None,
    ):
        """Initialize the client.

        Args:
            token: Access token (defaults to Settings.auth_token)
            base_url: Chat server base URL (defaults to Settings.ws_base_url)
            transport: Pre-built transport, mainly for tests
        """
        self._token = token if token is not None else get_settings().auth_token
        if transport is None:
            transport = WebSocketTransport(build_sessions_url(self._token, base_url))
            headers = build_auth_headers(self._token)
            if headers:
                transport.set_auth_headers(headers)

        self._transport = transport
        self._chat = ChatProtocolClient(transport, ignored_types={EVENT_SESSIONS, EVENT_SESSION_UPDATE})
        self._on_sessions_update: Callable[[list[ChatSessionSummary]], None] | None = None
        self._on_session_update: Callable[[dict[str, Any]], None] | None = None

        transport.on(EVENT_SESSIONS, self._handle_sessions)
        transport.on(EVENT_SESSION_UPDATE, self._handle_session_update)

    @property
    def chat(self) -> ChatProtocolClient:
        return self._chat

    def on(self, **handlers: Callable[..., None] | None) -> None:
        """Register handlers (merge semantics).

        Accepts ``on_sessions_update`` and ``on_session_update`` in addition to
        the ChatProtocolClient handlers.
        """
        if "on_sessions_update" in handlers:
            self._on_sessions_update = handlers.pop("on_sessions_update")
        if "on_session_update" in handlers:
            self._on_session_update = handlers.pop("on_session_update")
        if handlers:
            self._chat.on(**handlers)

    async def connect(self) -> None:
        await self._chat.connect()

    async def disconnect(self) -> None:
        await self._chat.disconnect()

    def is_connected(self) -> bool:
        return self._chat.is_connected()

    async def authenticate(self) -> bool:
        """Send the bearer token as an in-band authorization message.

        Returns:
            False when no token is configured (nothing is sent).
        """
        if not self._token:
            logger.error("No auth token available for sessions feed authentication")
            return False

        await self._transport.send({"type": "authorization", "token": f"Bearer {self._token}"})
        return True

    async def request_sessions(self) -> None:
        await self._transport.send({"type": "get_sessions"})

    async def send_message(self, session_id: str, content: str) -> None:
        """Post an operator message into a specific session."""
        await self._transport.send(
            {
                "type": "user_message",
                "sessionId": session_id,
                "content": content,
                "timestamp": utc_now_iso(),
            }
        )

    async def send(self, data: Mapping[str, Any]) -> None:
        await self._transport.send(data)

    def _handle_sessions(self, payload: Mapping[str, Any]) -> None:
        entries = payload.get("data")
        if not isinstance(entries, list):
            logger.warning("Ignoring sessions payload without a data list")
            return

        sessions: list[ChatSessionSummary] = []
        for entry in entries:
            try:
                sessions.append(ChatSessionSummary.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping malformed session entry: {e.error_count()} error(s)")

        logger.debug(f"Received {len(sessions)} session(s)")
        if self._on_sessions_update:
            self._on_sessions_update(sessions)

    def _handle_session_update(self, payload: Mapping[str, Any]) -> None:
        if self._on_session_update:
            self._on_session_update(dict(payload))
