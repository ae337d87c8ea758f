"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Launchpad Indexer, loading and validating environment variables at
startup. Core components never read settings directly; the pipeline
and CLI pass the values they need into constructors.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_PROGRAM_ID = "LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj"

KLINE_INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 3600,
    "2h": 2 * 3600,
    "4h": 4 * 3600,
    "12h": 12 * 3600,
    "1d": 24 * 3600,
}


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in value.split(",") if p.strip())


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite connection string; every command but debug needs it",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis cache settings (optional)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; enables the transaction cache when set",
    )
    transaction_ttl_seconds: int = Field(
        default=24 * 3600,
        alias="REDIS_TRANSACTION_TTL_SECONDS",
        ge=60,
        le=30 * 24 * 3600,
        description="TTL for cached confirmed transactions",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None or v == "":
            return None
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class SolanaSettings(BaseSettings):
    """Solana RPC settings."""

    model_config = SettingsConfigDict(env_prefix="SOLANA_", extra="ignore")

    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        alias="SOLANA_RPC_URL",
        description="Comma-separated list of JSON-RPC endpoints (round-robin)",
    )
    websocket_url: str | None = Field(
        default="wss://api.mainnet-beta.solana.com",
        alias="SOLANA_WEBSOCKET_URL",
        description="WebSocket endpoint for logsSubscribe",
    )
    commitment: Literal["processed", "confirmed", "finalized"] = Field(
        default="confirmed",
        alias="SOLANA_COMMITMENT",
        description="Commitment level for reads and subscriptions",
    )
    max_requests_per_second: float = Field(
        default=10.0,
        alias="SOLANA_MAX_REQUESTS_PER_SECOND",
        gt=0,
        le=1000,
        description="Per-endpoint rate limit",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        alias="SOLANA_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=300,
        description="HTTP timeout for RPC calls",
    )

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        """Validate every endpoint in the comma-separated list."""
        urls = _split_csv(v)
        if not urls:
            raise ValueError("SOLANA_RPC_URL must list at least one endpoint")
        for url in urls:
            if not url.startswith(("http://", "https://")):
                raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v

    @field_validator("websocket_url")
    @classmethod
    def validate_ws_url(cls, v: str | None) -> str | None:
        """Validate WebSocket URL format."""
        if v is None or v == "":
            return None
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("SOLANA_WEBSOCKET_URL must start with ws:// or wss://")
        return v

    @property
    def rpc_urls(self) -> tuple[str, ...]:
        """Parsed endpoint list."""
        return _split_csv(self.rpc_url)


class LaunchpadSettings(BaseSettings):
    """Target program settings."""

    model_config = SettingsConfigDict(env_prefix="LAUNCHPAD_", extra="ignore")

    program_id: str = Field(
        default=DEFAULT_PROGRAM_ID,
        alias="LAUNCHPAD_PROGRAM_ID",
        description="Address of the indexed launchpad program",
    )
    platform_config: str | None = Field(
        default=None,
        alias="LAUNCHPAD_PLATFORM_CONFIG",
        description="Only keep events whose accounts contain this platform config address",
    )

    @field_validator("program_id")
    @classmethod
    def validate_program_id(cls, v: str) -> str:
        """Validate the program address is a base58 public key."""
        try:
            Pubkey.from_string(v)
        except Exception as e:
            raise ValueError(f"LAUNCHPAD_PROGRAM_ID is not a valid address: {e}") from e
        return v

    @field_validator("platform_config")
    @classmethod
    def validate_platform_config(cls, v: str | None) -> str | None:
        if v is None or v.strip() == "":
            return None
        return v.strip()


class SyncSettings(BaseSettings):
    """Backfill, realtime and gap-detection settings."""

    model_config = SettingsConfigDict(env_prefix="SYNC_", extra="ignore")

    page_size: int = Field(
        default=1000,
        alias="SYNC_PAGE_SIZE",
        ge=1,
        le=1000,
        description="Signatures per getSignaturesForAddress page",
    )
    idle_poll_seconds: float = Field(
        default=1.0,
        alias="SYNC_IDLE_POLL_SECONDS",
        gt=0,
        le=3600,
        description="Sleep between polls when no pending range exists",
    )
    queue_poll_seconds: float = Field(
        default=1.0,
        alias="SYNC_QUEUE_POLL_SECONDS",
        gt=0,
        le=60,
        description="Wait on the realtime queue before re-checking shutdown",
    )
    queue_max_size: int = Field(
        default=10_000,
        alias="SYNC_QUEUE_MAX_SIZE",
        ge=1,
        le=1_000_000,
        description="Capacity of the realtime signature queue",
    )
    decode_max_attempts: int = Field(
        default=3,
        alias="SYNC_DECODE_MAX_ATTEMPTS",
        ge=1,
        le=10,
        description="Fetch/decode attempts per signature",
    )
    decode_retry_delay_seconds: float = Field(
        default=1.0,
        alias="SYNC_DECODE_RETRY_DELAY_SECONDS",
        ge=0,
        le=60,
        description="Base delay; attempt N waits N times this",
    )
    start_signature: str | None = Field(
        default=None,
        alias="SYNC_START_SIGNATURE",
        description="Earliest known signature, used as the gap detector bootstrap anchor",
    )
    gap_detect_interval_seconds: float = Field(
        default=60.0,
        alias="SYNC_GAP_DETECT_INTERVAL_SECONDS",
        gt=0,
        le=24 * 3600,
        description="Interval between gap detector passes",
    )
    stale_claim_seconds: int = Field(
        default=900,
        alias="SYNC_STALE_CLAIM_SECONDS",
        ge=60,
        le=7 * 24 * 3600,
        description="A processing backfill range without progress for this long is re-filed",
    )

    @field_validator("start_signature")
    @classmethod
    def validate_start_signature(cls, v: str | None) -> str | None:
        if v is None or v.strip() == "":
            return None
        return v.strip()


class KlineSettings(BaseSettings):
    """OHLC aggregate settings."""

    model_config = SettingsConfigDict(env_prefix="KLINES_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="KLINES_ENABLED",
        description="Fold new trades into OHLC klines",
    )
    intervals: str = Field(
        default="1m,5m,30m,2h,12h",
        alias="KLINES_INTERVALS",
        description="Comma-separated kline intervals",
    )

    @field_validator("intervals")
    @classmethod
    def validate_intervals(cls, v: str) -> str:
        for name in _split_csv(v):
            if name not in KLINE_INTERVAL_SECONDS:
                raise ValueError(f"Unsupported kline interval: {name}")
        return v

    @property
    def interval_seconds(self) -> dict[str, int]:
        """Configured intervals mapped to their width in seconds."""
        if not self.enabled:
            return {}
        return {name: KLINE_INTERVAL_SECONDS[name] for name in _split_csv(self.intervals)}


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from launchpad_indexer.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.solana.rpc_urls)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    solana: SolanaSettings = Field(
        default_factory=lambda: SolanaSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    launchpad: LaunchpadSettings = Field(
        default_factory=lambda: LaunchpadSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    sync: SyncSettings = Field(
        default_factory=lambda: SyncSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    klines: KlineSettings = Field(
        default_factory=lambda: KlineSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url) if self.database.url else "(not set)",
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "solana": {
                "rpc_urls": ", ".join(self._redact_url(u) for u in self.solana.rpc_urls),
                "websocket_url": self._redact_url(self.solana.websocket_url)
                if self.solana.websocket_url
                else "(not set)",
                "commitment": self.solana.commitment,
            },
            "launchpad": {
                "program_id": self.launchpad.program_id,
                "platform_config": self.launchpad.platform_config or "(not set)",
            },
            "sync": {
                "page_size": str(self.sync.page_size),
                "decode_max_attempts": str(self.sync.decode_max_attempts),
                "start_signature": self.sync.start_signature or "(not set)",
            },
            "klines": {
                "enabled": str(self.klines.enabled),
                "intervals": self.klines.intervals,
            },
            "log_level": self.log_level,
        }

    def validate_requirements(
        self, *, command: Literal["backfill", "realtime", "gap-detect", "debug", "init-db"]
    ) -> None:
        """Validate command-specific requirements.

        If a capability is required for a command and not configured, the
        application must refuse to run.
        """
        if command != "debug" and not self.database.url:
            raise ValueError(f"DATABASE_URL is required for {command}")
        if command == "realtime" and not self.solana.websocket_url:
            raise ValueError("SOLANA_WEBSOCKET_URL is required for realtime mode")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        if "api-key=" in url:
            return url.split("api-key=")[0] + "api-key=***"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
