"""Tests for environment-based settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from falmcp.foundation.config import (
    CacheSettings,
    FalmcpSettings,
    LoggingSettings,
    ProviderSettings,
    RetrySettings,
    clear_settings_cache,
    get_settings,
)

_ENV = (
    "FAL_KEY", "FALMCP_PROVIDER_API_KEY", "FALMCP_RETRY_MAX_RETRIES", "FALMCP_RETRY_INITIAL_DELAY_MS",
    "FALMCP_CACHE_IDEMPOTENCY_TTL", "FALMCP_LOG_LEVEL", "FALMCP_SERVER_NAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


def test_defaults() -> None:
    settings = FalmcpSettings()
    assert settings.server_name == "fal-ai-mcp"
    assert settings.catalog_path.is_file()
    assert settings.cache.idempotency_ttl == 86400.0
    assert settings.cache.schema_ttl == 3600.0
    assert settings.retry.max_retries == 4
    assert settings.logging.level == "INFO"
    assert settings.provider.run_url == "https://fal.run"
    assert settings.provider.has_api_key is False


def test_default_retry_policy() -> None:
    policy = RetrySettings().policy()
    assert policy.max_retries == 4
    assert policy.delays() == (2.0, 4.0, 8.0, 16.0)
    assert policy.attempt_timeout == 300.0


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FALMCP_RETRY_MAX_RETRIES", "2")
    monkeypatch.setenv("FALMCP_RETRY_INITIAL_DELAY_MS", "500")
    monkeypatch.setenv("FALMCP_CACHE_IDEMPOTENCY_TTL", "60")
    monkeypatch.setenv("FALMCP_SERVER_NAME", "custom")

    settings = FalmcpSettings()

    assert settings.server_name == "custom"
    assert settings.cache.idempotency_ttl == 60.0
    assert settings.retry.policy().delays() == (0.5, 1.0)


@pytest.mark.parametrize("name", ["FAL_KEY", "FALMCP_PROVIDER_API_KEY"])
def test_api_key_sources(monkeypatch: pytest.MonkeyPatch, name: str) -> None:
    monkeypatch.setenv(name, "secret-key")
    provider = ProviderSettings()
    assert provider.has_api_key is True
    assert provider.api_key.get_secret_value() == "secret-key"
    assert "secret-key" not in repr(provider)


def test_api_key_by_name() -> None:
    assert ProviderSettings(api_key="k").has_api_key is True


def test_level_is_uppercased(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FALMCP_LOG_LEVEL", "debug")
    assert LoggingSettings().level == "DEBUG"


@pytest.mark.parametrize("factory", [
    lambda: RetrySettings(max_retries=11),
    lambda: CacheSettings(idempotency_ttl=0),
    lambda: LoggingSettings(format="xml"),
])
def test_invalid_values(factory) -> None:
    with pytest.raises(ValidationError):
        factory()


def test_get_settings_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("FALMCP_SERVER_NAME", "reloaded")
    assert get_settings().server_name == "fal-ai-mcp"
    clear_settings_cache()
    assert get_settings().server_name == "reloaded"
