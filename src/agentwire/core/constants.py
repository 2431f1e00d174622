"""
Constants and configuration for agentwire.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# ============================================================================
# Transport Configuration
# ============================================================================

#: Base delay in seconds for the reconnect backoff.
#: The nth reconnect waits min(base * 2**n, cap) seconds.
RECONNECT_BASE_DELAY = 1.0

#: Upper bound in seconds for a single reconnect delay.
RECONNECT_MAX_DELAY = 30.0

#: Number of automatic reconnects after an abnormal closure.
#: Once exhausted, only an explicit connect() restarts the connection.
MAX_RECONNECT_ATTEMPTS = 5

#: Handshake timeout in seconds passed to websockets.connect().
WS_OPEN_TIMEOUT = 10.0

# ============================================================================
# Protocol Normalization
# ============================================================================

#: Maximum number of message identifiers kept for duplicate suppression.
#: When exceeded, the window is trimmed to the most recent half.
DEDUP_WINDOW_SIZE = 100

#: Every canonical message is tagged with this origin marker.
MESSAGE_SOURCE = "websocket"

#: Payload fields probed for a timestamp, in priority order.
#: Looked up at top level first, then under each of TIMESTAMP_CONTAINERS.
TIMESTAMP_FIELDS: tuple[str, ...] = ("timestamp", "created_at", "createdAt", "time", "sent_at", "sentAt")

#: Nested objects that may wrap the actual message depending on the send path
#: (direct send, session replay, response wrapper).
TIMESTAMP_CONTAINERS: tuple[str, ...] = ("message", "response")

#: Payload fields probed for a session identifier.
SESSION_ID_FIELDS: tuple[str, ...] = ("session_id", "sessionId")

#: Payload fields probed for a server-assigned message identifier.
MESSAGE_ID_FIELDS: tuple[str, ...] = ("id", "messageId", "message_id")

#: Payload fields probed for a correlation id echoed back by the server.
CORRELATION_ID_FIELDS: tuple[str, ...] = ("correlation_id", "correlationId")

#: Payload fields carrying the sub-kind of a "ui" message.
UI_KIND_FIELDS: tuple[str, ...] = ("ui_type", "uiKind", "ui_kind")

# ============================================================================
# Message Types
# ============================================================================

MSG_TYPE_USER = "user"
MSG_TYPE_BOT_RESPONSE = "bot_response"
MSG_TYPE_SYSTEM = "system_message"
MSG_TYPE_UI = "ui"
MSG_TYPE_SESSION_INIT = "session_init"
MSG_TYPE_TYPING_START = "typing_start"
MSG_TYPE_TYPING_END = "typing_end"
MSG_TYPE_ERROR = "error"

#: Raw types/senders that denote the end user.
USER_ALIASES = frozenset({"user", "message", "user_message", "human"})

#: Raw types/senders that denote the agent side of the conversation.
BOT_ALIASES = frozenset({"assistant", "bot", "agent", "bot_response", "ai"})

#: Raw types that denote system notices.
SYSTEM_ALIASES = frozenset({"system", "system_message"})

# ============================================================================
# Transport Event Names
# ============================================================================

#: Emitted with {"status": "connected" | "disconnected", "error"?: str}
EVENT_CONNECTION = "connection"

#: Emitted with a human-readable error string
EVENT_ERROR = "error"

#: Emitted for every inbound payload carrying a "type"
EVENT_MESSAGE = "message"

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"

# ============================================================================
# Orchestration
# ============================================================================

#: Minimum seconds between two connection attempts for the same slot,
#: and the stagger between consecutive slots in one pass.
CONNECTION_DELAY = 2.0

#: Seconds to wait for a slot's socket to open before giving up.
CONNECTION_TIMEOUT = 10.0

#: Consecutive failed attempts after which a slot is skipped.
MAX_CONNECTION_FAILURES = 3

#: Seconds to wait after each disconnect during cleanup.
CLEANUP_GRACE_PERIOD = 0.1

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size in bytes for log files before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of exchange log backups to retain during rotation.
LOG_BACKUP_COUNT_EXCHANGES = 5

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Maximum characters to show in log previews for query/response content.
LOG_PREVIEW_LENGTH = 50

#: Length of generated component IDs (hex characters) used for log correlation.
COMPONENT_ID_LENGTH = 8

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================

#: Valid environment names for configuration loading
Environment = Literal["development", "production", "test"]


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env_name}",
        PROJECT_ROOT / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


def _reload_dotenv_into_environ() -> None:
    """Load our dotenv chain into os.environ so later files override earlier ones."""
    from dotenv import load_dotenv

    for env_file in _get_env_files():
        load_dotenv(env_file, override=True)


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    Every field has a working default so the transport stack can be used
    without any configuration; components also accept explicit arguments
    that take precedence over these values.
    """

    # Environment identification
    app_env: Environment = Field(default="development", description="Application environment")

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    log_dir: Path | None = Field(default=None, description="Directory for JSON log files (disabled when unset)")
    enable_content_logging: bool = Field(
        default=False, description="Include (redacted) message content in exchange logs"
    )

    # Endpoint and auth
    ws_base_url: str = Field(default="ws://localhost:8000", description="Base URL of the chat WebSocket server")
    auth_token: str | None = Field(default=None, description="Bearer token attached to the WebSocket handshake")

    # Transport
    ws_open_timeout: float = Field(default=WS_OPEN_TIMEOUT, description="WebSocket handshake timeout (seconds)")
    ws_reconnect_base_delay: float = Field(
        default=RECONNECT_BASE_DELAY, description="Base delay for reconnect backoff (seconds)"
    )
    ws_reconnect_max_delay: float = Field(
        default=RECONNECT_MAX_DELAY, description="Maximum delay for reconnect backoff (seconds)"
    )
    ws_max_reconnect_attempts: int = Field(
        default=MAX_RECONNECT_ATTEMPTS, description="Automatic reconnects before giving up"
    )

    # Protocol
    dedup_window_size: int = Field(default=DEDUP_WINDOW_SIZE, description="Recently seen message ids to remember")

    # Orchestration
    connection_delay: float = Field(default=CONNECTION_DELAY, description="Stagger between slot attempts (seconds)")
    connection_timeout: float = Field(default=CONNECTION_TIMEOUT, description="Per-attempt open timeout (seconds)")
    max_connection_failures: int = Field(
        default=MAX_CONNECTION_FAILURES, description="Failures before a slot's circuit breaker opens"
    )
    cleanup_grace_period: float = Field(
        default=CLEANUP_GRACE_PERIOD, description="Pause after each disconnect during cleanup (seconds)"
    )

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority for environment-specific config.

        Priority (highest to lowest):
        1. init_settings - Values passed to Settings() constructor
        2. env_settings - Environment variables
        3. dotenv files - .env.local > .env.{APP_ENV} > .env (last-wins in list)
        """
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("ws_base_url")
    @classmethod
    def validate_ws_base_url(cls, v: str) -> str:
        """Accept ws(s) or http(s) base URLs and drop any trailing slash."""
        if not v.startswith(("ws://", "wss://", "http://", "https://")):
            raise ValueError("ws_base_url must start with ws://, wss://, http:// or https://")
        return v.rstrip("/")

    @field_validator(
        "ws_open_timeout",
        "ws_reconnect_base_delay",
        "ws_reconnect_max_delay",
        "connection_delay",
        "connection_timeout",
        "cleanup_grace_period",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Delays and timeouts cannot be negative."""
        if v < 0:
            raise ValueError("delays and timeouts must be >= 0")
        return v

    @field_validator("ws_max_reconnect_attempts", "dedup_window_size", "max_connection_failures")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must allow at least one item."""
        if v < 1:
            raise ValueError("limits must be >= 1")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.app_env == "test"


# ============================================================================
# Settings Management (Thread-safe cache)
# ============================================================================


class _SettingsManager:
    """Thread-safe cached settings manager."""

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        """Get the cached settings instance, loading it on first use.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self._instance is not None:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is not None:
                return self._instance

            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        """Force reload settings from environment files."""
        with self._lock:
            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        """Clear cached settings instance."""
        with self._lock:
            self._instance = None


# Module-level singleton manager
_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get the cached settings instance.

    This is the primary entry point for accessing configuration.

    Returns:
        Validated Settings instance.

    Raises:
        ValueError: If configuration is invalid.
    """
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force reload settings from environment files."""
    return _settings_manager.reload()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
