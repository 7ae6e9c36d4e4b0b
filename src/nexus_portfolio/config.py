"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Nexus Portfolio aggregation service, loading and validating provider
credentials and tuning knobs from environment variables at startup.

A chain family whose provider credential is absent is simply disabled;
missing keys are never a startup error.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nexus_portfolio.providers.http import DEFAULT_RETRY_DELAY_SECONDS

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


def _validate_http_url(v: str | None, *, name: str) -> str | None:
    if v is None:
        return v
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"{name} must be an HTTP(S) endpoint")
    return v.rstrip("/")


class DatabaseSettings(BaseSettings):
    """Database connection settings (portfolio history)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="Async SQLAlchemy URL (PostgreSQL or SQLite); history recording is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must be a postgresql://, postgresql+asyncpg:// "
                "or sqlite+aiosqlite:// connection string"
            )
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class RedisSettings(BaseSettings):
    """Redis connection settings (price cache and alert state)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; caching is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis://")
        return v


class MoralisSettings(BaseSettings):
    """EVM data provider settings (Moralis Web3 Data API)."""

    model_config = SettingsConfigDict(env_prefix="MORALIS_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="MORALIS_API_KEY",
        description="Moralis API key; the EVM chain family is disabled when unset",
    )
    base_url: str = Field(
        default="https://deep-index.moralis.io/api/v2.2",
        alias="MORALIS_BASE_URL",
        description="Moralis REST base URL",
    )
    max_requests_per_second: float = Field(
        default=20.0,
        alias="MORALIS_MAX_REQUESTS_PER_SECOND",
        gt=0,
        le=1000,
        description="Client-side request rate limit",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v, name="MORALIS_BASE_URL") or v

    @property
    def enabled(self) -> bool:
        return self.api_key is not None


class HeliusSettings(BaseSettings):
    """Solana data provider settings (Helius RPC + enriched transactions)."""

    model_config = SettingsConfigDict(env_prefix="HELIUS_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="HELIUS_API_KEY",
        description="Helius API key; the Solana chain family is disabled when unset",
    )
    rpc_url: str = Field(
        default="https://mainnet.helius-rpc.com",
        alias="HELIUS_RPC_URL",
        description="Helius JSON-RPC endpoint (DAS API)",
    )
    api_url: str = Field(
        default="https://api.helius.xyz",
        alias="HELIUS_API_URL",
        description="Helius REST endpoint for enriched transactions",
    )
    max_requests_per_second: float = Field(
        default=10.0,
        alias="HELIUS_MAX_REQUESTS_PER_SECOND",
        gt=0,
        le=1000,
    )
    transaction_limit: int = Field(
        default=50,
        alias="HELIUS_TRANSACTION_LIMIT",
        ge=1,
        le=100,
        description="Enriched transactions fetched per wallet",
    )

    @field_validator("rpc_url", "api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v, name="Helius URL") or v

    @property
    def enabled(self) -> bool:
        return self.api_key is not None


class BlockstreamSettings(BaseSettings):
    """Bitcoin block explorer settings (Esplora API, unauthenticated)."""

    model_config = SettingsConfigDict(env_prefix="BLOCKSTREAM_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="BLOCKSTREAM_ENABLED",
        description="Enable the Bitcoin chain family",
    )
    base_url: str = Field(
        default="https://blockstream.info/api",
        alias="BLOCKSTREAM_BASE_URL",
        description="Esplora REST base URL",
    )
    transaction_limit: int = Field(
        default=50,
        alias="BLOCKSTREAM_TRANSACTION_LIMIT",
        ge=1,
        le=100,
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v, name="BLOCKSTREAM_BASE_URL") or v


class CoinGeckoSettings(BaseSettings):
    """Market-data price provider settings."""

    model_config = SettingsConfigDict(env_prefix="COINGECKO_", extra="ignore")

    base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        alias="COINGECKO_BASE_URL",
        description="CoinGecko REST base URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="COINGECKO_API_KEY",
        description="Optional demo API key (sent as x-cg-demo-api-key)",
    )
    cache_ttl_seconds: int = Field(
        default=300,
        alias="COINGECKO_CACHE_TTL_SECONDS",
        ge=1,
        le=24 * 3600,
        description="Redis TTL for cached price quotes",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v, name="COINGECKO_BASE_URL") or v


class AggregationSettings(BaseSettings):
    """Fan-out and output-volume settings for the aggregator."""

    model_config = SettingsConfigDict(env_prefix="AGGREGATION_", extra="ignore")

    wallet_timeout_seconds: float = Field(
        default=45.0,
        alias="AGGREGATION_WALLET_TIMEOUT_SECONDS",
        gt=0,
        le=600,
        description="Upper bound for fetching one wallet, retries included",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="AGGREGATION_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=300,
        description="Per-HTTP-request timeout for provider calls",
    )
    max_retries: int = Field(
        default=2,
        alias="AGGREGATION_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries for transient provider errors (429/5xx/network)",
    )
    max_transactions: int = Field(
        default=100,
        alias="AGGREGATION_MAX_TRANSACTIONS",
        ge=1,
        le=10_000,
        description="Cap on transactions returned per aggregation",
    )

    @property
    def worst_case_request_seconds(self) -> float:
        """Longest one provider call can take: every attempt times out."""
        attempts = self.max_retries + 1
        backoff = DEFAULT_RETRY_DELAY_SECONDS * (2**self.max_retries - 1)
        return self.request_timeout_seconds * attempts + backoff

    @model_validator(mode="after")
    def validate_wallet_budget(self) -> AggregationSettings:
        if self.wallet_timeout_seconds < self.worst_case_request_seconds:
            raise ValueError(
                "AGGREGATION_WALLET_TIMEOUT_SECONDS must cover one request with all retries "
                f"(>= {self.worst_case_request_seconds:.1f}s)"
            )
        return self


class AlertSettings(BaseSettings):
    """Whale alert significance settings."""

    model_config = SettingsConfigDict(env_prefix="ALERTS_", extra="ignore")

    min_value_usd: Decimal = Field(
        default=Decimal("50000"),
        alias="ALERTS_MIN_VALUE_USD",
        description="Default minimum transaction value (USD) for a whale alert",
    )

    @field_validator("min_value_usd")
    @classmethod
    def validate_min_value_usd(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("ALERTS_MIN_VALUE_USD must be >= 0")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from nexus_portfolio.config import get_settings

        settings = get_settings()
        print(settings.moralis.enabled)
        print(settings.log_level)
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
    moralis: MoralisSettings = Field(
        default_factory=lambda: MoralisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    helius: HeliusSettings = Field(
        default_factory=lambda: HeliusSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    blockstream: BlockstreamSettings = Field(
        default_factory=lambda: BlockstreamSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    coingecko: CoinGeckoSettings = Field(
        default_factory=lambda: CoinGeckoSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    aggregation: AggregationSettings = Field(
        default_factory=lambda: AggregationSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    alerts: AlertSettings = Field(
        default_factory=lambda: AlertSettings(
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
            "moralis": {
                "base_url": self.moralis.base_url,
                "api_key": "(set)" if self.moralis.api_key else "(not set)",
            },
            "helius": {
                "rpc_url": self.helius.rpc_url,
                "api_url": self.helius.api_url,
                "api_key": "(set)" if self.helius.api_key else "(not set)",
            },
            "blockstream": {
                "enabled": str(self.blockstream.enabled),
                "base_url": self.blockstream.base_url,
            },
            "coingecko": {
                "base_url": self.coingecko.base_url,
                "api_key": "(set)" if self.coingecko.api_key else "(not set)",
                "cache_ttl_seconds": str(self.coingecko.cache_ttl_seconds),
            },
            "aggregation": {
                "wallet_timeout_seconds": str(self.aggregation.wallet_timeout_seconds),
                "request_timeout_seconds": str(self.aggregation.request_timeout_seconds),
                "max_transactions": str(self.aggregation.max_transactions),
            },
            "alerts": {
                "min_value_usd": str(self.alerts.min_value_usd),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
