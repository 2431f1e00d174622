"""WebSocket endpoint URLs and handshake headers for the chat server."""

from __future__ import annotations

from urllib.parse import quote, urlencode

from agentwire.core.constants import get_settings


def _ws_base(base_url: str | None) -> str:
    """Resolve the base URL, converting http(s) to ws(s)."""
    base = (base_url or get_settings().ws_base_url).rstrip("/")
    if base.startswith("https://"):
        return "wss://" + base[len("https://") :]
    if base.startswith("http://"):
        return "ws://" + base[len("http://") :]
    return base


def build_chat_url(agent_id: str, slot_index: int | None = None, base_url: str | None = None) -> str:
    """URL of an agent's chat socket.

    Comparison slots get their own endpoint (``chat1``, ``chat2``, ...).

    Examples:
        >>> build_chat_url("agent-1", base_url="wss://api.example.com")
        'wss://api.example.com/ws/chat/agent-1/'
        >>> build_chat_url("agent-1", slot_index=0, base_url="wss://api.example.com")
        'wss://api.example.com/ws/chat/agent-1/chat1/'
    """
    if not agent_id:
        raise ValueError("agent_id is required")
    if slot_index is not None and slot_index < 0:
        raise ValueError(f"slot_index must be >= 0, got {slot_index}")

    url = f"{_ws_base(base_url)}/ws/chat/{quote(str(agent_id), safe='')}/"
    if slot_index is not None:
        url += f"chat{slot_index + 1}/"
    return url


def build_sessions_url(token: str | None = None, base_url: str | None = None) -> str:
    """URL of the live chat-sessions feed; the token travels as a query parameter."""
    url = f"{_ws_base(base_url)}/ws/chat/sessions/"
    if token:
        url += "?" + urlencode({"token": token})
    return url


def build_auth_headers(token: str | None) -> dict[str, str]:
    """Handshake headers for bearer authentication (empty without a token)."""
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}
