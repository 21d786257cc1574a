"""Generation provider HTTP client."""

from .client import FalClient, ProviderError, extract_input_schema

__all__ = ["FalClient", "ProviderError", "extract_input_schema"]
