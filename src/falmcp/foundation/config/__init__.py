"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    CacheSettings,
    FalmcpSettings,
    LoggingSettings,
    ProviderSettings,
    RetrySettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "FalmcpSettings",
    "LoggingSettings",
    "ProviderSettings",
    "RetrySettings",
    "clear_settings_cache",
    "get_settings",
]
