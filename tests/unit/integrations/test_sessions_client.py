"""Tests for the chat-sessions feed client."""

from __future__ import annotations

import json

from datetime import datetime
from typing import Any

import pytest

from agentwire.integrations.sessions_client import ChatSessionsClient
from agentwire.models.chat_models import ChatSessionSummary

BASE_URL = "wss://api.example.com"


def session_entry(session_id: str, **overrides: Any) -> dict[str, Any]:
    entry = {
        "id": session_id,
        "customer": "Ada",
        "email": None,
        "lastMessage": "Where is my order?",
        "time": "2 min ago",
        "status": "active",
        "agent": "Support Bot",
        "satisfaction": "neutral",
        "priority": "high",
        "duration": "5m",
        "handoffCount": 1,
        "topic": ["orders"],
        "channel": "web",
        "agentType": "ai",
    }
    entry.update(overrides)
    return entry


class TestChatSessionsClientConnection:
    """Tests for endpoint, auth and outbound messages."""

    def test_url_carries_token(self) -> None:
        """Test the token travels as a query parameter."""
        client = ChatSessionsClient("tok-123", base_url=BASE_URL)

        assert client.chat.transport.url == "wss://api.example.com/ws/chat/sessions/?token=tok-123"

    @pytest.mark.asyncio
    async def test_bearer_header_on_handshake(self, fake_server: Any) -> None:
        """Test the token is also sent as a bearer header."""
        client = ChatSessionsClient("tok-123", base_url=BASE_URL)

        await client.connect()

        assert client.is_connected() is True
        assert fake_server.calls[0][1]["additional_headers"] == {"Authorization": "Bearer tok-123"}

        await client.disconnect()
        assert client.is_connected() is False

    @pytest.mark.asyncio
    async def test_authenticate_and_requests(self, fake_server: Any) -> None:
        """Test the authorization, session list and operator message payloads."""
        client = ChatSessionsClient("tok-123", base_url=BASE_URL)
        await client.connect()

        assert await client.authenticate() is True
        await client.request_sessions()
        await client.send_message("sess-1", "We are on it")
        await client.send({"type": "ping"})

        sent = fake_server.last.sent
        assert sent[0] == {"type": "authorization", "token": "Bearer tok-123"}
        assert sent[1] == {"type": "get_sessions"}
        assert sent[2]["type"] == "user_message"
        assert sent[2]["sessionId"] == "sess-1"
        assert sent[2]["content"] == "We are on it"
        datetime.fromisoformat(sent[2]["timestamp"])
        assert sent[3] == {"type": "ping"}

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_authenticate_without_token(self, fake_server: Any) -> None:
        """Test nothing is sent when no token is available."""
        client = ChatSessionsClient(base_url=BASE_URL)
        await client.connect()

        assert await client.authenticate() is False
        assert fake_server.last.sent == []
        assert fake_server.calls[0][0] == "wss://api.example.com/ws/chat/sessions/"

        await client.disconnect()


class TestChatSessionsClientInbound:
    """Tests for inbound session and chat payloads."""

    def test_sessions_update(self, recorder: Any) -> None:
        """Test session lists are parsed into summaries and malformed entries skipped."""
        client = ChatSessionsClient("tok", base_url=BASE_URL)
        updates = recorder()
        messages = recorder()
        client.on(on_sessions_update=updates, on_message=messages)

        payload = {"type": "sessions", "data": [session_entry("s-1"), {"customer": "no id"}, session_entry("s-2")]}
        client.chat.transport._dispatch(json.dumps(payload))

        assert updates.count == 1
        sessions = updates.args[0]
        assert [s.id for s in sessions] == ["s-1", "s-2"]
        assert isinstance(sessions[0], ChatSessionSummary)
        assert sessions[0].last_message == "Where is my order?"
        assert sessions[0].agent_type == "ai"
        assert sessions[0].handoff_count == 1
        assert messages.count == 0

    def test_sessions_without_list_ignored(self, recorder: Any) -> None:
        """Test a sessions payload without a data list is ignored."""
        client = ChatSessionsClient("tok", base_url=BASE_URL)
        updates = recorder()
        client.on(on_sessions_update=updates)

        client.chat.transport._emit("sessions", {"type": "sessions", "data": "nope"})

        assert updates.count == 0

    def test_session_update(self, recorder: Any) -> None:
        """Test session updates are passed through as dicts."""
        client = ChatSessionsClient("tok", base_url=BASE_URL)
        updates = recorder()
        messages = recorder()
        client.on(on_session_update=updates, on_message=messages)

        payload = {"type": "session_update", "session": {"id": "s-1", "status": "closed"}}
        client.chat.transport._emit("message", payload)
        client.chat.transport._emit("session_update", payload)

        assert updates.args == [payload]
        assert messages.count == 0

    def test_chat_messages_are_normalized_and_deduplicated(self, recorder: Any) -> None:
        """Test chat messages on the feed are canonical and delivered once."""
        client = ChatSessionsClient("tok", base_url=BASE_URL)
        messages = recorder()
        client.on(on_message=messages)

        payload = {
            "type": "bot_response",
            "id": "m-1",
            "content": "Your order ships today",
            "sessionId": "s-1",
            "metadata": {"model": "gpt-4o", "temperature": 0.5},
        }
        client.chat.transport._emit("message", payload)
        client.chat.transport._emit("message", payload)

        assert messages.count == 1
        message = messages.args[0]
        assert message.type == "bot_response"
        assert message.session_id == "s-1"
        assert message.model_metadata is not None
        assert message.model_metadata.model == "gpt-4o"
