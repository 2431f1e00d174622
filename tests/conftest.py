"""Shared test fixtures for the agentwire test suite.

Provides an in-memory stand-in for a websockets client connection, a patched
``websockets.connect`` that hands those out, settings isolation and a small
recorder for callback assertions.
"""

from __future__ import annotations

import asyncio
import json

from collections.abc import Awaitable, Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest

# ============================================================================
# Test Isolation: Settings Cache
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Fresh settings for every test, independent of the developer's environment."""
    from agentwire.core.constants import clear_settings_cache

    monkeypatch.setenv("APP_ENV", "test")
    for name in ("AUTH_TOKEN", "WS_BASE_URL", "LOG_DIR", "ENABLE_CONTENT_LOGGING", "DEBUG"):
        monkeypatch.delenv(name, raising=False)

    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Fake WebSocket Server
# ============================================================================


class FakeWebSocket:
    """In-memory replacement for websockets' ClientConnection."""

    def __init__(self, url: str = "", headers: Any = None):
        self.url = url
        self.headers = headers
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.fail_send = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, frame: str) -> None:
        if self.fail_send:
            raise ConnectionError("socket write failed")
        self.sent.append(json.loads(frame))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def feed(self, payload: Any) -> None:
        """Deliver a frame to the client (dicts are JSON-encoded)."""
        self._inbox.put_nowait(payload if isinstance(payload, str) else json.dumps(payload))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._inbox.put_nowait(None)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        frame = await self._inbox.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeServer:
    """Patched ``websockets.connect`` that records calls and returns FakeWebSockets."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failing_urls: set[str] = set()
        self.hanging_urls: set[str] = set()
        self.fail_all = False

    async def connect(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if url in self.hanging_urls:
            await asyncio.Event().wait()
        if self.fail_all or url in self.failing_urls:
            raise OSError(f"Connection refused: {url}")

        ws = FakeWebSocket(url, kwargs.get("additional_headers"))
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]

    def sockets_for(self, url: str) -> list[FakeWebSocket]:
        return [ws for ws in self.sockets if ws.url == url]


@pytest.fixture
def fake_server() -> Generator[FakeServer, None, None]:
    """Route every websockets.connect() call to an in-memory server."""
    server = FakeServer()
    with patch("websockets.connect", new=server.connect):
        yield server


# ============================================================================
# Helpers
# ============================================================================


class Recorder:
    """Callable that records the positional arguments of every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def args(self) -> list[Any]:
        """First argument of each call."""
        return [call[0] if call else None for call in self.calls]


@pytest.fixture
def recorder() -> Callable[[], Recorder]:
    """Factory for fresh Recorder instances."""
    return Recorder


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the event loop until it holds."""
    return _wait_until
