"""
Integrations Module - Chat WebSocket Clients
============================================

Layers, bottom-up (each layer holds one instance of the layer below):

Transport (transport.py):
    One reconnecting WebSocket per instance:
    - Event fan-out to listeners (connection, error, message, <payload type>)
    - Exponential backoff min(base * 2**n, cap) up to a fixed attempt ceiling
    - Auth headers attached to the handshake

Protocol Normalizer (normalizer.py):
    Generic chat client producing CanonicalMessage objects:
    - Type table mapping raw types and senders onto four canonical types
    - Prioritized timestamp/session/id lookups across nested wrappers
    - Bounded duplicate-suppression window
    - Session id reported once per client

Correlated Client (model_client.py):
    One model-comparison slot:
    - Queries tagged with a fresh correlation id and the slot's model config
    - Responses reported as ResponseRecords linked to the current query

Connection Orchestrator (connection_manager.py):
    Several slots for one agent:
    - Sequential, staggered startup with a per-attempt timeout
    - Per-slot circuit breaker after repeated failures

Sessions Feed (sessions_client.py):
    Live list of chat sessions plus operator messaging.

Endpoints (endpoints.py):
    URL and auth-header builders for the chat server.

Example:
    Comparing two models side by side:

        from agentwire.integrations.connection_manager import (
            ConnectionOrchestrator,
            OrchestratorCallbacks,
        )
        from agentwire.models.chat_models import SlotConfig

        orchestrator = ConnectionOrchestrator("agent-1")
        await orchestrator.initialize_connections(
            2,
            [SlotConfig(model="gpt-4o"), SlotConfig(model="claude-sonnet")],
            OrchestratorCallbacks(on_message=lambda i, msg: print(i, msg.content)),
        )
        await orchestrator.send_message(0, "hello")
        await orchestrator.cleanup()
"""
