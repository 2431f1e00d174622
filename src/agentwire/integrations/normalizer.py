"""Protocol normalization for chat WebSocket payloads.

Chat servers deliver the same logical message in several shapes depending on
the send path (direct send, session replay, response wrapper). The helpers in
this module decode those shapes through explicit, prioritized field lists into
a single CanonicalMessage; ChatProtocolClient wires them to a transport and
exposes callback-driven delivery with duplicate suppression.
"""

from __future__ import annotations

import hashlib
import json

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields, replace
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from agentwire.core.constants import (
    BOT_ALIASES,
    CORRELATION_ID_FIELDS,
    EVENT_CONNECTION,
    EVENT_ERROR,
    EVENT_MESSAGE,
    MESSAGE_ID_FIELDS,
    MSG_TYPE_ERROR,
    MSG_TYPE_TYPING_END,
    MSG_TYPE_TYPING_START,
    MSG_TYPE_UI,
    SESSION_ID_FIELDS,
    STATUS_CONNECTED,
    SYSTEM_ALIASES,
    TIMESTAMP_CONTAINERS,
    TIMESTAMP_FIELDS,
    UI_KIND_FIELDS,
    USER_ALIASES,
    get_settings,
)
from agentwire.integrations.transport import WebSocketTransport
from agentwire.models.chat_models import (
    CanonicalMessage,
    MessageType,
    ModelMetadata,
    OutboundMessage,
    SessionInitMessage,
    utc_now_iso,
)
from agentwire.utils.logger import logger

# Epoch values above this are treated as milliseconds (year ~5138 in seconds)
_EPOCH_MS_THRESHOLD = 1e11

# Nested objects that may wrap the logical message
_NESTED_CONTAINERS: tuple[str, ...] = TIMESTAMP_CONTAINERS

# ============================================================================
# Payload decoding helpers
# ============================================================================


def _lookup(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first present, non-empty value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _containers(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Top-level payload followed by any nested message/response objects."""
    scopes: list[Mapping[str, Any]] = [payload]
    for key in _NESTED_CONTAINERS:
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            scopes.append(nested)
    return scopes


def _lookup_nested(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    keys = tuple(keys)
    for scope in _containers(payload):
        value = _lookup(scope, keys)
        if value is not None:
            return value
    return None


def normalize_message_type(raw_type: Any, sender: Any = None) -> MessageType:
    """Map a raw server type (and optional sender) onto a canonical message type.

    A user or bot sender decides before a generic raw type does. Unknown or
    missing types fall back to ``bot_response``.

    Examples:
        >>> normalize_message_type("assistant")
        'bot_response'
        >>> normalize_message_type("message", sender="user")
        'user'
    """
    kind = raw_type.lower() if isinstance(raw_type, str) else ""
    who = sender.lower() if isinstance(sender, str) else ""

    if kind == MSG_TYPE_UI:
        return "ui"
    if kind in SYSTEM_ALIASES:
        return "system_message"
    # An explicit sender outranks a generic raw type such as "message"
    if who in USER_ALIASES:
        return "user"
    if who in BOT_ALIASES:
        return "bot_response"
    if kind in USER_ALIASES:
        return "user"
    return "bot_response"


def _parse_timestamp(value: Any) -> str | None:
    """Validate a raw timestamp value and return it as an ISO-8601 string."""
    if isinstance(value, bool):
        return None

    if isinstance(value, int | float):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC).isoformat()
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return text

    return None


def _find_timestamp(payload: Mapping[str, Any]) -> str | None:
    for scope in _containers(payload):
        for key in TIMESTAMP_FIELDS:
            if key not in scope:
                continue
            parsed = _parse_timestamp(scope[key])
            if parsed is not None:
                return parsed
    return None


def extract_timestamp(payload: Mapping[str, Any]) -> str:
    """Find the first valid timestamp in ``payload``, or return the current time.

    Fields in TIMESTAMP_FIELDS are tried at top level, then under ``message``,
    then under ``response``.
    """
    return _find_timestamp(payload) or utc_now_iso()


def extract_session_id(payload: Mapping[str, Any]) -> str | None:
    value = _lookup_nested(payload, SESSION_ID_FIELDS)
    return str(value) if value is not None else None


def extract_content(payload: Mapping[str, Any]) -> str:
    """Pull the message text from ``content``, a string ``message``, or a nested object."""
    content = payload.get("content")
    if isinstance(content, str) and content:
        return content

    message = payload.get("message")
    if isinstance(message, str) and message:
        return message

    for scope in _containers(payload)[1:]:
        nested = scope.get("content")
        if isinstance(nested, str) and nested:
            return nested

    return ""


def derive_message_id(payload: Mapping[str, Any]) -> str | None:
    """Identify a payload for duplicate suppression.

    Uses a server-assigned id when present. A payload stamped by the sender
    gets a digest of its canonical JSON instead, so a resent copy maps to the
    same id. Payloads with neither return None and are never suppressed, since
    two identical unstamped replies are distinct messages.
    """
    value = _lookup_nested(payload, MESSAGE_ID_FIELDS)
    if value is not None:
        return str(value)
    if _find_timestamp(payload) is None:
        return None

    raw = json.dumps(payload, sort_keys=True, default=str)
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()
    return f"{payload.get('type', 'message')}:{digest}"


def extract_model_metadata(payload: Mapping[str, Any]) -> ModelMetadata | None:
    """Read model/temperature/prompt from the payload, ``config`` or ``metadata``."""
    scopes: list[Mapping[str, Any]] = [payload]
    for key in ("config", "metadata"):
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            scopes.append(nested)

    model = temperature = prompt = None
    for scope in scopes:
        if model is None:
            model = _lookup(scope, ("model", "response_model"))
        if temperature is None:
            temperature = _lookup(scope, ("temperature",))
        if prompt is None:
            prompt = _lookup(scope, ("prompt", "system_prompt"))

    if model is None and temperature is None and prompt is None:
        return None

    if isinstance(temperature, bool) or not isinstance(temperature, int | float):
        temperature = None

    return ModelMetadata(
        model=str(model) if model is not None else None,
        temperature=temperature,
        prompt=str(prompt) if prompt is not None else None,
    )


def normalize_payload(payload: Mapping[str, Any], session_id: str | None = None) -> CanonicalMessage | None:
    """Build a CanonicalMessage from a raw payload.

    Returns:
        The canonical message, or None when the payload carries nothing
        deliverable (no content, or a ``ui`` payload without a kind).
    """
    msg_type = normalize_message_type(payload.get("type"), payload.get("sender"))
    content = extract_content(payload)

    ui_kind = None
    if msg_type == MSG_TYPE_UI:
        kind = _lookup(payload, UI_KIND_FIELDS)
        if kind is None:
            return None
        ui_kind = str(kind)
    elif not content:
        return None

    correlation_id = _lookup_nested(payload, CORRELATION_ID_FIELDS)

    try:
        return CanonicalMessage(
            type=msg_type,
            content=content,
            timestamp=extract_timestamp(payload),
            id=derive_message_id(payload),
            session_id=extract_session_id(payload) or session_id,
            correlation_id=str(correlation_id) if correlation_id is not None else None,
            model_metadata=extract_model_metadata(payload),
            ui_kind=ui_kind,
        )
    except ValidationError as e:
        logger.warning(f"Dropping payload that failed validation: {e.error_count()} error(s)")
        return None


# ============================================================================
# Duplicate suppression
# ============================================================================


class DedupWindow:
    """Bounded, insertion-ordered set of recently delivered message ids.

    When the window grows past ``max_size`` it keeps only the most recent half.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._seen: dict[str, None] = {}

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, message_id: str) -> bool:
        """Record ``message_id``. Returns False if it was already in the window."""
        if message_id in self._seen:
            return False

        self._seen[message_id] = None
        if len(self._seen) > self.max_size:
            keep = max(self.max_size // 2, 1)
            self._seen = dict.fromkeys(list(self._seen)[-keep:])
        return True

    def clear(self) -> None:
        self._seen.clear()


# ============================================================================
# Generic chat client
# ============================================================================


@dataclass(frozen=True)
class ChatEventHandlers:
    """Callbacks for a ChatProtocolClient. Every handler is optional."""

    on_message: Callable[[CanonicalMessage], None] | None = None
    on_typing_start: Callable[[], None] | None = None
    on_typing_end: Callable[[], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_connection_change: Callable[[bool], None] | None = None
    on_session_id_received: Callable[[str], None] | None = None


_HANDLER_NAMES = frozenset(f.name for f in fields(ChatEventHandlers))


class ChatProtocolClient:
    """Single-connection chat client producing canonical messages.

    Wraps one WebSocketTransport: inbound payloads are normalized, deduplicated
    and delivered through the registered handlers; outbound helpers build the
    chat wire payloads.
    """

    def __init__(
        self,
        transport: WebSocketTransport,
        dedup_window_size: int | None = None,
        ignored_types: Iterable[str] = (),
    ):
        """Initialize the client.

        Args:
            transport: Transport owned by this client
            dedup_window_size: Ids remembered for duplicate suppression (defaults to settings)
            ignored_types: Raw payload types left to other listeners on the transport
        """
        if dedup_window_size is None:
            dedup_window_size = get_settings().dedup_window_size

        self._transport = transport
        self._handlers = ChatEventHandlers()
        self._dedup = DedupWindow(dedup_window_size)
        self._ignored_types = frozenset(ignored_types)
        self._session_id: str | None = None
        self._session_announced = False

        transport.on(EVENT_MESSAGE, self._handle_payload)
        transport.on(EVENT_ERROR, self._handle_transport_error)
        transport.on(EVENT_CONNECTION, self._handle_connection)

    @classmethod
    def for_url(cls, url: str, **kwargs: Any) -> ChatProtocolClient:
        """Create a client with its own transport for ``url``."""
        return cls(WebSocketTransport(url), **kwargs)

    @property
    def transport(self) -> WebSocketTransport:
        return self._transport

    @property
    def session_id(self) -> str | None:
        """First session id received from the server, if any."""
        return self._session_id

    def on(self, **handlers: Callable[..., None] | None) -> None:
        """Register handlers, merging with those already set.

        Raises:
            TypeError: For an unknown handler name.
        """
        unknown = set(handlers) - _HANDLER_NAMES
        if unknown:
            raise TypeError(f"Unknown handler(s): {', '.join(sorted(unknown))}")
        self._handlers = replace(self._handlers, **handlers)

    # ------------------------------------------------------------------
    # Imperative surface
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await self._transport.connect()

    async def disconnect(self) -> None:
        await self._transport.disconnect()

    def is_connected(self) -> bool:
        return self._transport.is_connected()

    def set_auth_headers(self, headers: Mapping[str, str]) -> None:
        self._transport.set_auth_headers(headers)

    async def send(self, data: Mapping[str, Any]) -> None:
        """Send a raw payload unchanged."""
        await self._transport.send(data)

    async def send_message(self, content: str) -> None:
        """Send a user chat message."""
        await self._transport.send(OutboundMessage(content=content).to_wire())

    async def send_session_init(self, session_id: str) -> None:
        """Announce an existing session so the server can resume it."""
        await self._transport.send(SessionInitMessage(session_id=session_id).to_wire())

    # ------------------------------------------------------------------
    # Inbound handling
    # ------------------------------------------------------------------

    def _handle_connection(self, data: Mapping[str, Any]) -> None:
        connected = data.get("status") == STATUS_CONNECTED
        if self._handlers.on_connection_change:
            self._handlers.on_connection_change(connected)

        reason = data.get("error")
        if reason and self._handlers.on_error:
            self._handlers.on_error(str(reason))

    def _handle_transport_error(self, error: Any) -> None:
        if self._handlers.on_error:
            self._handlers.on_error(str(error))

    def _capture_session_id(self, payload: Mapping[str, Any]) -> str | None:
        session_id = extract_session_id(payload)
        if session_id and not self._session_announced:
            self._session_announced = True
            self._session_id = session_id
            logger.info(f"Session established: {session_id}")
            if self._handlers.on_session_id_received:
                self._handlers.on_session_id_received(session_id)
        return session_id

    def _handle_payload(self, payload: Mapping[str, Any]) -> None:
        self._capture_session_id(payload)
        raw_type = payload.get("type")

        if raw_type == MSG_TYPE_TYPING_START:
            if self._handlers.on_typing_start:
                self._handlers.on_typing_start()
            return
        if raw_type == MSG_TYPE_TYPING_END:
            if self._handlers.on_typing_end:
                self._handlers.on_typing_end()
            return
        if raw_type == MSG_TYPE_ERROR:
            reason = extract_content(payload) or str(payload.get("error") or "Server error")
            logger.warning(f"Server reported error: {reason}")
            if self._handlers.on_error:
                self._handlers.on_error(reason)
            return
        if raw_type in self._ignored_types:
            return

        message = normalize_payload(payload, session_id=self._session_id)
        if message is None:
            logger.debug(f"Skipping payload without deliverable content (type={raw_type})")
            return

        if message.id is not None and not self._dedup.add(message.id):
            logger.debug(f"Suppressed duplicate message {message.id}")
            return

        if self._handlers.on_message:
            self._handlers.on_message(message)


__all__ = [
    "ChatEventHandlers",
    "ChatProtocolClient",
    "DedupWindow",
    "derive_message_id",
    "extract_content",
    "extract_model_metadata",
    "extract_session_id",
    "extract_timestamp",
    "normalize_message_type",
    "normalize_payload",
]
