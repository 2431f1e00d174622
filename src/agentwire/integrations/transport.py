"""WebSocket transport with automatic reconnection.

Owns exactly one physical socket. Inbound JSON payloads are dispatched to
listeners keyed by event name; abnormal closures are retried with exponential
backoff until a fixed attempt ceiling is reached.
"""

from __future__ import annotations

import asyncio
import contextlib
import json

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

import websockets

from websockets.asyncio.client import ClientConnection

from agentwire.core.constants import (
    EVENT_CONNECTION,
    EVENT_ERROR,
    EVENT_MESSAGE,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    get_settings,
)
from agentwire.models.error_models import (
    ERROR_MESSAGES,
    ErrorCode,
    TransportErrorEvent,
    TransportNotConnectedError,
)
from agentwire.utils.logger import logger

Listener = Callable[[Any], None]

# Lifecycle events owned by the transport; inbound payloads never emit these by type
_RESERVED_EVENTS = frozenset({EVENT_CONNECTION, EVENT_ERROR, EVENT_MESSAGE})


class ConnectionStatus(str, Enum):
    """Lifecycle state of the underlying socket."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


def compute_backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Reconnect delay for the given attempt number: min(base * 2**attempt, cap)."""
    return min(base_delay * (2**attempt), max_delay)


class WebSocketTransport:
    """Reconnecting WebSocket wrapper with event dispatch.

    Events:
        connection: {"status": "connected" | "disconnected", "error"?: str}
        error: human-readable error string
        message: every inbound JSON object
        <type>: inbound objects whose "type" field names the event
    """

    def __init__(
        self,
        url: str,
        *,
        base_delay: float | None = None,
        max_delay: float | None = None,
        max_reconnect_attempts: int | None = None,
        open_timeout: float | None = None,
    ):
        """Initialize the transport.

        Args:
            url: WebSocket URL (e.g., "ws://localhost:8000/ws/chat/agent-1/")
            base_delay: Backoff base in seconds (defaults to settings)
            max_delay: Backoff cap in seconds (defaults to settings)
            max_reconnect_attempts: Reconnects before giving up (defaults to settings)
            open_timeout: Handshake timeout in seconds (defaults to settings)
        """
        settings = get_settings()
        self.url = url
        self.base_delay = settings.ws_reconnect_base_delay if base_delay is None else base_delay
        self.max_delay = settings.ws_reconnect_max_delay if max_delay is None else max_delay
        self.max_reconnect_attempts = (
            settings.ws_max_reconnect_attempts if max_reconnect_attempts is None else max_reconnect_attempts
        )
        self.open_timeout = settings.ws_open_timeout if open_timeout is None else open_timeout

        self._ws: ClientConnection | None = None
        self._status = ConnectionStatus.IDLE
        self._auth_headers: dict[str, str] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._listen_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempts = 0
        self._exhausted = False
        self._closing = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        """True while a reconnect timer is scheduled."""
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.OPEN and self._ws is not None

    def set_auth_headers(self, headers: Mapping[str, str]) -> None:
        """Set headers sent with the handshake of the next connection attempt."""
        self._auth_headers = dict(headers)

    # ------------------------------------------------------------------
    # Listener registry
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        self._listeners[event] = [cb for cb in listeners if cb != listener]

    def _emit(self, event: str, data: Any) -> None:
        """Call every listener for ``event``; a failing listener does not stop the rest."""
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(data)
            except Exception as e:
                logger.error(f"{self.url}: listener for '{event}' raised: {e}", exc_info=True)

    def _report_error(self, code: ErrorCode, details: dict[str, Any] | None = None) -> None:
        event = TransportErrorEvent.from_code(code, details)
        logger.warning(f"{self.url}: {event.message}", error=event.to_dict())
        self._emit(EVENT_ERROR, event.message)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket. No-op while already open or connecting."""
        if self._status in (ConnectionStatus.CONNECTING, ConnectionStatus.OPEN):
            return

        self._cancel_reconnect()
        if self._exhausted:
            # Explicit connect after giving up starts a fresh backoff sequence
            self._exhausted = False
            self._reconnect_attempts = 0

        await self._open()

    async def _open(self) -> None:
        self._closing = False
        self._status = ConnectionStatus.CONNECTING
        logger.info(f"Connecting to {self.url}")

        try:
            ws = await websockets.connect(
                self.url,
                additional_headers=self._auth_headers or None,
                open_timeout=self.open_timeout,
            )
        except asyncio.CancelledError:
            self._status = ConnectionStatus.CLOSED
            raise
        except Exception as e:
            self._status = ConnectionStatus.CLOSED
            if self._closing:
                return
            self._report_error(ErrorCode.WS_CONNECTION_FAILED, {"reason": str(e)})
            self._handle_abnormal_close()
            return

        if self._closing:
            # disconnect() was requested during the handshake
            await ws.close()
            self._status = ConnectionStatus.CLOSED
            return

        self._ws = ws
        self._status = ConnectionStatus.OPEN
        self._reconnect_attempts = 0
        self._exhausted = False
        logger.info(f"WebSocket connected: {self.url}")

        self._listen_task = asyncio.create_task(self._listen_loop(ws))
        self._emit(EVENT_CONNECTION, {"status": STATUS_CONNECTED})

    async def disconnect(self) -> None:
        """Close the socket and cancel any pending reconnect. Never auto-reconnects."""
        self._closing = True
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        self._exhausted = False

        ws, self._ws = self._ws, None
        if ws is not None:
            self._status = ConnectionStatus.CLOSING
            try:
                await ws.close()
            except Exception as e:
                logger.warning(f"{self.url}: error while closing: {e}")

        task, self._listen_task = self._listen_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._status != ConnectionStatus.CONNECTING:
            self._status = ConnectionStatus.CLOSED

        if ws is not None:
            logger.info(f"WebSocket disconnected: {self.url}")
            self._emit(EVENT_CONNECTION, {"status": STATUS_DISCONNECTED})

    async def _listen_loop(self, ws: ClientConnection) -> None:
        """Receive frames until the socket closes."""
        try:
            async for raw in ws:
                self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{self.url}: connection lost: {e}")

        self._on_socket_closed(ws)

    def _on_socket_closed(self, ws: ClientConnection) -> None:
        if ws is not self._ws:
            # Stale socket, already replaced or released by disconnect()
            return

        self._ws = None
        self._listen_task = None
        self._status = ConnectionStatus.CLOSED
        if self._closing:
            return

        logger.warning(f"WebSocket closed unexpectedly: {self.url}")
        self._handle_abnormal_close()

    def _handle_abnormal_close(self) -> None:
        self._emit(EVENT_CONNECTION, {"status": STATUS_DISCONNECTED})
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> float | None:
        """Schedule a single reconnect attempt.

        Returns:
            The scheduled delay in seconds, or None if nothing was scheduled
            (a reconnect is already pending or the attempt ceiling was hit).
        """
        if self.reconnect_pending:
            return None

        if self._reconnect_attempts >= self.max_reconnect_attempts:
            self._exhausted = True
            reason = ERROR_MESSAGES[ErrorCode.WS_RECONNECT_EXHAUSTED]
            logger.error(f"{self.url}: {reason} ({self.max_reconnect_attempts})")
            self._emit(EVENT_CONNECTION, {"status": STATUS_DISCONNECTED, "error": reason})
            return None

        self._reconnect_attempts += 1
        delay = compute_backoff_delay(self._reconnect_attempts, self.base_delay, self.max_delay)
        logger.info(
            f"Reconnecting to {self.url} in {delay:.1f}s "
            f"(attempt {self._reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        return delay

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self._open()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"{self.url}: received invalid JSON: {e}")
            self._report_error(ErrorCode.WS_MESSAGE_INVALID)
            return

        if not isinstance(data, dict):
            logger.warning(f"{self.url}: ignoring non-object payload of type {type(data).__name__}")
            self._report_error(ErrorCode.WS_MESSAGE_INVALID)
            return

        logger.debug(f"{self.url}: received {data.get('type', 'untyped')} payload")
        self._emit(EVENT_MESSAGE, data)

        msg_type = data.get("type")
        if isinstance(msg_type, str) and msg_type and msg_type not in _RESERVED_EVENTS:
            self._emit(msg_type, data)

    def ensure_connected(self) -> None:
        """Raise TransportNotConnectedError (after emitting an error event) unless open."""
        if not self.is_connected():
            self._report_error(ErrorCode.WS_NOT_CONNECTED)
            raise TransportNotConnectedError()

    async def send(self, message: Mapping[str, Any]) -> None:
        """Serialize and write ``message``.

        Raises:
            TransportNotConnectedError: If the socket is not open. An ``error``
                event is emitted first.
        """
        self.ensure_connected()
        ws = self._ws
        if ws is None:
            raise TransportNotConnectedError()
        frame = json.dumps(message)

        try:
            await ws.send(frame)
        except Exception as e:
            logger.error(f"{self.url}: error sending message: {e}")
            self._report_error(ErrorCode.WS_SEND_FAILED, {"reason": str(e)})
