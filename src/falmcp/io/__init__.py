"""I/O layer: idempotency cache, schema resolution, and the provider client."""

from .cache import CacheEntry, IdempotencyStore, parameters_digest
from .provider import FalClient, ProviderError, extract_input_schema
from .schema import SchemaCacheEntry, SchemaResolver, fallback_schema

__all__ = [
    # Idempotency
    "CacheEntry", "IdempotencyStore", "parameters_digest",
    # Provider
    "FalClient", "ProviderError", "extract_input_schema",
    # Schema
    "SchemaCacheEntry", "SchemaResolver", "fallback_schema",
]
