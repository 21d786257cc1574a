"""Model input-schema resolution."""

from .resolver import DEFAULT_SCHEMA_TTL, SchemaCacheEntry, SchemaFetcher, SchemaResolver, fallback_schema

__all__ = ["DEFAULT_SCHEMA_TTL", "SchemaCacheEntry", "SchemaFetcher", "SchemaResolver", "fallback_schema"]
