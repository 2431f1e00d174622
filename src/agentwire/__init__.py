"""
agentwire - Real-time chat transport for AI agents
===================================================

Streams user and bot messages over persistent WebSocket connections and
reconciles the many payload shapes chat servers produce into one canonical
message.

Key Features:
    - **Reconnecting transport**: exponential backoff with an attempt ceiling
    - **Protocol normalization**: canonical messages, session capture, duplicate suppression
    - **Query correlation**: every query tagged, every response linked back
    - **Multi-model orchestration**: staggered startup, timeouts, per-slot circuit breaker
    - **Structured logging**: JSON log files with PII redaction

Modules:
    core: Defaults and pydantic-settings configuration
    models: Pydantic models for messages, slot configuration and errors
    integrations: Transport, normalizer, clients and orchestrator
    utils: Logging
"""

__version__ = "1.0.0"
