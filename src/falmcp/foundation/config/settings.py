"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from falmcp.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.cache.idempotency_ttl
    86400.0
    >>> settings.retry.policy().delays()
    (2.0, 4.0, 8.0, 16.0)

    # Or with environment variables:
    # FALMCP_CACHE_IDEMPOTENCY_TTL=3600
    # FALMCP_RETRY_MAX_RETRIES=2
    # FALMCP_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import AliasChoices, Field, PositiveFloat, SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from falmcp.runtime.retry import RetryPolicy


def _default_catalog_path() -> Path:
    from falmcp.catalog import packaged_catalog_path

    return packaged_catalog_path()


class CacheSettings(BaseSettings):
    """Idempotency and schema cache lifetimes."""

    model_config = SettingsConfigDict(
        env_prefix="FALMCP_CACHE_",
        extra="ignore",
    )

    idempotency_ttl: PositiveFloat = Field(default=86400.0, description="Idempotency entry lifetime in seconds")
    schema_ttl: PositiveFloat = Field(default=3600.0, description="Schema cache lifetime in seconds")
    sweep_interval: PositiveFloat = Field(default=3600.0, description="Seconds between expired-entry sweeps")


class RetrySettings(BaseSettings):
    """Default retry configuration for upstream calls."""

    model_config = SettingsConfigDict(
        env_prefix="FALMCP_RETRY_",
        extra="ignore",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 4
    initial_delay_ms: Annotated[int, Field(ge=0)] = 2000
    multiplier: PositiveFloat = Field(default=2.0, description="Exponential backoff base")
    attempt_timeout: PositiveFloat | None = Field(default=300.0, description="Per-attempt timeout in seconds")

    def policy(self) -> RetryPolicy:
        """Build the RetryPolicy these settings describe."""
        from falmcp.runtime.retry import ExponentialBackoff, RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            backoff=ExponentialBackoff(base=self.initial_delay_ms / 1000, multiplier=self.multiplier),
            attempt_timeout=self.attempt_timeout,
        )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FALMCP_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class ProviderSettings(BaseSettings):
    """Generation provider connection."""

    model_config = SettingsConfigDict(
        env_prefix="FALMCP_PROVIDER_",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("FALMCP_PROVIDER_API_KEY", "FAL_KEY"),
        description="Provider API key",
    )
    run_url: str = Field(default="https://fal.run", description="Base URL for synchronous model runs")
    timeout: PositiveFloat = Field(default=300.0, description="HTTP timeout in seconds")

    @computed_field
    @property
    def has_api_key(self) -> bool:
        return self.api_key is not None and bool(self.api_key.get_secret_value())


class FalmcpSettings(BaseSettings):
    """Root settings for the falmcp server.

    Loads configuration from environment variables with FALMCP_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        FALMCP_CACHE_IDEMPOTENCY_TTL=86400
        FALMCP_CACHE_SCHEMA_TTL=3600
        FALMCP_RETRY_MAX_RETRIES=4
        FALMCP_RETRY_INITIAL_DELAY_MS=2000
        FALMCP_LOG_FORMAT=json
        FAL_KEY=...
    """

    model_config = SettingsConfigDict(
        env_prefix="FALMCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    server_name: str = Field(default="fal-ai-mcp", description="Name advertised to MCP clients")
    catalog_path: Path = Field(default_factory=_default_catalog_path, description="Model catalog JSON file")

    # Nested settings (loaded with FALMCP_CACHE_, FALMCP_RETRY_, etc.)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)


# Singleton pattern for settings
@lru_cache(maxsize=1)
def get_settings() -> FalmcpSettings:
    """Get the global settings instance (cached)."""
    return FalmcpSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
