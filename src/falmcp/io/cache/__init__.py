"""Idempotency caching for side-effecting upstream calls."""

from .idempotency import DEFAULT_TTL, CacheEntry, IdempotencyStore, parameters_digest

__all__ = ["CacheEntry", "DEFAULT_TTL", "IdempotencyStore", "parameters_digest"]
