"""Connection orchestrator for multi-model comparison sessions.

Brings up one ModelChatClient per slot strictly in slot order, staggering
attempts to avoid overloading the chat server, bounding each attempt with a
timeout and skipping slots whose circuit breaker is open.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from types import MappingProxyType

from agentwire.core.constants import get_settings
from agentwire.integrations.model_client import ModelChatClient
from agentwire.models.chat_models import CanonicalMessage, QueryRecord, ResponseRecord, SlotConfig
from agentwire.models.error_models import ConnectionAttemptError, ErrorCode, TransportError
from agentwire.utils.logger import logger

#: Builds the client for (agent_id, config, slot_index)
ClientFactory = Callable[[str, SlotConfig, int], ModelChatClient]


@dataclass
class ConnectionState:
    """Per-slot connection bookkeeping.

    Attributes:
        is_connected: Socket is currently open.
        is_connecting: An attempt is in flight.
        failure_count: Consecutive failed attempts; the slot is skipped once
            this reaches the orchestrator's ``max_failures``.
        last_attempt: time.monotonic() of the latest attempt, None if never.
    """

    is_connected: bool = False
    is_connecting: bool = False
    failure_count: int = 0
    last_attempt: float | None = None


@dataclass
class OrchestratorCallbacks:
    """Slot-indexed callbacks. Every callback is optional."""

    on_message: Callable[[int, CanonicalMessage], None] | None = None
    on_typing_start: Callable[[int], None] | None = None
    on_typing_end: Callable[[int], None] | None = None
    on_error: Callable[[int, str], None] | None = None
    on_connection_change: Callable[[int, bool], None] | None = None
    on_query_sent: Callable[[int, QueryRecord], None] | None = None
    on_response_received: Callable[[int, ResponseRecord], None] | None = None
    on_session_id_received: Callable[[int, str], None] | None = None


class ConnectionOrchestrator:
    """Manages the set of slot connections for one agent.

    Usage:
        orchestrator = ConnectionOrchestrator("agent-1")
        clients = await orchestrator.initialize_connections(
            2, [SlotConfig(model="gpt-4o"), SlotConfig(model="claude")], callbacks
        )
        await orchestrator.send_message(0, "hello")

        # On shutdown:
        await orchestrator.cleanup()
    """

    def __init__(
        self,
        agent_id: str,
        *,
        client_factory: ClientFactory | None = None,
        connection_delay: float | None = None,
        connection_timeout: float | None = None,
        max_failures: int | None = None,
        cleanup_grace_period: float | None = None,
        base_url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            agent_id: Agent whose chat endpoints are used
            client_factory: Builds the client for a slot (defaults to ModelChatClient.create)
            connection_delay: Stagger between attempts in seconds
            connection_timeout: Per-attempt open timeout in seconds
            max_failures: Consecutive failures before a slot is skipped
            cleanup_grace_period: Pause after each disconnect during cleanup
            base_url: Chat server base URL
            auth_token: Bearer token for the handshake

        Unset values fall back to Settings.
        """
        settings = get_settings()
        self.agent_id = agent_id
        self.connection_delay = settings.connection_delay if connection_delay is None else connection_delay
        self.connection_timeout = settings.connection_timeout if connection_timeout is None else connection_timeout
        self.max_failures = settings.max_connection_failures if max_failures is None else max_failures
        self.cleanup_grace_period = (
            settings.cleanup_grace_period if cleanup_grace_period is None else cleanup_grace_period
        )
        self.base_url = base_url
        self.auth_token = settings.auth_token if auth_token is None else auth_token
        self._client_factory = client_factory or self._default_client_factory

        self._connections: dict[int, ModelChatClient] = {}
        self._states: dict[int, ConnectionState] = {}
        self._initializing = False

    def _default_client_factory(self, agent_id: str, config: SlotConfig, slot_index: int) -> ModelChatClient:
        return ModelChatClient.create(
            agent_id, config, slot_index, base_url=self.base_url, auth_token=self.auth_token
        )

    @property
    def connections(self) -> Mapping[int, ModelChatClient]:
        """Read-only view of the currently established clients."""
        return MappingProxyType(self._connections)

    @property
    def is_initializing(self) -> bool:
        return self._initializing

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def initialize_connections(
        self,
        num_slots: int,
        configs: Sequence[SlotConfig],
        callbacks: OrchestratorCallbacks,
    ) -> dict[int, ModelChatClient]:
        """Tear down existing connections and bring up ``num_slots`` new ones.

        A call made while another is still running returns the current
        connections without starting a second pass.

        Returns:
            Mapping of slot index to client for every slot that connected.

        Raises:
            ValueError: If fewer configs than slots are given.
        """
        if self._initializing:
            logger.info(f"Connection initialization already in progress for agent {self.agent_id}")
            return dict(self._connections)

        if len(configs) < num_slots:
            raise ValueError(f"Expected {num_slots} slot configs, got {len(configs)}")

        self._initializing = True
        logger.info(f"Initializing {num_slots} connection(s) for agent {self.agent_id}")

        try:
            await self._teardown_connections()

            established: dict[int, ModelChatClient] = {}
            for index in range(num_slots):
                state = self._states.setdefault(index, ConnectionState())

                if state.failure_count >= self.max_failures:
                    logger.warning(
                        f"Skipping slot {index}: circuit breaker open "
                        f"({state.failure_count} failures)",
                        code=ErrorCode.SLOT_CIRCUIT_OPEN.value,
                    )
                    continue

                await self._wait_for_rate_limit(index, state)

                client = await self._attempt_slot(index, configs[index], callbacks, state)
                if client is not None:
                    established[index] = client

                if index < num_slots - 1:
                    await asyncio.sleep(self.connection_delay)

            logger.info(f"Connected {len(established)}/{num_slots} slot(s) for agent {self.agent_id}")
            return established
        finally:
            self._initializing = False

    async def _wait_for_rate_limit(self, index: int, state: ConnectionState) -> None:
        """Sleep out the remainder of connection_delay since the slot's last attempt."""
        if state.last_attempt is None:
            return

        elapsed = time.monotonic() - state.last_attempt
        remaining = self.connection_delay - elapsed
        if remaining > 0:
            logger.debug(f"Waiting {remaining:.2f}s before connecting slot {index}")
            await asyncio.sleep(remaining)

    async def _attempt_slot(
        self,
        index: int,
        config: SlotConfig,
        callbacks: OrchestratorCallbacks,
        state: ConnectionState,
    ) -> ModelChatClient | None:
        state.is_connecting = True
        state.last_attempt = time.monotonic()

        client: ModelChatClient | None = None
        try:
            client = self._client_factory(self.agent_id, config, index)
            await self._create_connection(index, client, callbacks)
        except Exception as e:
            state.is_connecting = False
            state.is_connected = False
            state.failure_count += 1
            logger.error(
                f"Failed to connect slot {index} ({state.failure_count}/{self.max_failures}): {e}",
                code=(e.code if isinstance(e, TransportError) else ErrorCode.SLOT_CONNECTION_FAILED).value,
            )

            if client is not None:
                await client.disconnect()
            if callbacks.on_error:
                callbacks.on_error(index, f"Connection failed: {e}")
            return None

        state.is_connecting = False
        state.is_connected = True
        state.failure_count = 0
        self._connections[index] = client
        logger.info(f"Slot {index} connected")
        return client

    async def _create_connection(
        self,
        index: int,
        client: ModelChatClient,
        callbacks: OrchestratorCallbacks,
    ) -> None:
        """Wire ``client`` to the slot's callbacks and wait for its socket to open.

        Raises:
            ConnectionAttemptError: On a connection error or timeout.
        """
        opened: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def handle_connection(connected: bool) -> None:
            # Slot bookkeeping settles before caller code runs
            if self._connections.get(index) is client:
                self._states.setdefault(index, ConnectionState()).is_connected = connected
            if connected and not opened.done():
                opened.set_result(None)
            if callbacks.on_connection_change:
                try:
                    callbacks.on_connection_change(index, connected)
                except Exception as e:
                    logger.error(f"Slot {index}: on_connection_change raised: {e}", exc_info=True)

        def handle_error(error: str) -> None:
            if not opened.done():
                # Reported once by _attempt_slot
                opened.set_exception(ConnectionAttemptError(error))
                return
            if callbacks.on_error:
                callbacks.on_error(index, error)

        def forward(callback: Callable[..., None] | None) -> Callable[..., None] | None:
            if callback is None:
                return None
            return lambda *args: callback(index, *args)

        client.on(
            on_message=forward(callbacks.on_message),
            on_typing_start=forward(callbacks.on_typing_start),
            on_typing_end=forward(callbacks.on_typing_end),
            on_session_id_received=forward(callbacks.on_session_id_received),
            on_error=handle_error,
            on_connection_change=handle_connection,
        )
        if callbacks.on_query_sent or callbacks.on_response_received:
            client.set_history_callbacks(
                forward(callbacks.on_query_sent),
                forward(callbacks.on_response_received),
            )

        async def open_client() -> None:
            await client.connect()
            await opened

        try:
            await asyncio.wait_for(open_client(), timeout=self.connection_timeout)
        except TimeoutError as e:
            raise ConnectionAttemptError("Connection timeout", ErrorCode.WS_TIMEOUT) from e
        finally:
            if not opened.done():
                opened.cancel()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _teardown_connections(self) -> None:
        """Disconnect every client, keeping failure counts for the circuit breaker."""
        clients = list(self._connections.items())
        self._connections.clear()

        for index, client in clients:
            try:
                await client.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting slot {index}: {e}")
            await asyncio.sleep(self.cleanup_grace_period)

        for state in self._states.values():
            state.is_connected = False
            state.is_connecting = False

    async def cleanup(self) -> None:
        """Disconnect all slots and forget their state. Safe to call repeatedly."""
        if self._connections:
            logger.info(f"Cleaning up {len(self._connections)} connection(s) for agent {self.agent_id}")
        await self._teardown_connections()
        self._states.clear()

    def reset_circuit_breaker(self, index: int) -> None:
        state = self._states.get(index)
        if state is not None:
            state.failure_count = 0
            logger.info(f"Circuit breaker reset for slot {index}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_connected(self, index: int) -> bool:
        state = self._states.get(index)
        return state.is_connected if state is not None else False

    def get_connected_count(self) -> int:
        return sum(1 for state in self._states.values() if state.is_connected)

    def get_connection_state(self, index: int) -> ConnectionState | None:
        """Snapshot of a slot's state (a copy), or None if never attempted."""
        state = self._states.get(index)
        return replace(state) if state is not None else None

    # ------------------------------------------------------------------
    # Slot operations
    # ------------------------------------------------------------------

    def update_config(self, index: int, config: SlotConfig) -> None:
        client = self._connections.get(index)
        if client is not None:
            client.update_config(config)

    async def send_message(self, index: int, content: str) -> QueryRecord | None:
        """Send a query on a connected slot.

        Returns:
            The issued QueryRecord, or None if the slot is not connected.
        """
        client = self._connections.get(index)
        if client is None or not self.is_connected(index):
            logger.warning(f"Cannot send on slot {index}: not connected")
            return None
        return await client.send_message(content)
