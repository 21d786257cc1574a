"""Model input-schema resolution with TTL caching and a heuristic fallback.

A fetched schema is cached per model id until it is older than the TTL.
When a fetch fails the resolver returns a minimal schema inferred from the
model id instead of failing; that fallback is not cached, so the next
resolution tries the provider again.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from falmcp.runtime.observability import BoundLogger, get_logger

JsonDict = dict[str, Any]
SchemaFetcher = Callable[[str], Awaitable[JsonDict]]

DEFAULT_SCHEMA_TTL: float = 3600.0

_log = get_logger("falmcp.schema")

# Substring markers in a model id -> extra URL input the fallback advertises
_MEDIA_INPUTS: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("image-to-", "img2"), "image_url", "URL of the input image"),
    (("audio-to-", "speech"), "audio_url", "URL of the input audio"),
    (("video-to-",), "video_url", "URL of the input video"),
)


def fallback_schema(model_id: str) -> JsonDict:
    """Permissive schema inferred from naming conventions in the model id."""
    properties: JsonDict = {"prompt": {"type": "string", "description": "Input prompt for generation"}}
    for markers, name, description in _MEDIA_INPUTS:
        if any(m in model_id for m in markers):
            properties[name] = {"type": "string", "description": description, "format": "uri"}
    return {"type": "object", "properties": properties}


@dataclass(slots=True)
class SchemaCacheEntry:
    schema: JsonDict
    fetched_at: float

    def fresh(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at <= ttl


class SchemaResolver:
    """Resolves model input schemas through a fetcher, caching successes.

    Args:
        fetcher: Async callable returning the input schema for a model id
        ttl: Seconds a fetched schema stays fresh (default: 1h)
        clock: Time source, injectable for tests
        log: Logger (default: falmcp.schema)

    Example:
        >>> resolver = SchemaResolver(client.fetch_input_schema)
        >>> schema = await resolver.resolve("fal-ai/flux/dev")
    """

    __slots__ = ("_fetch", "_ttl", "_clock", "_entries", "_log")

    def __init__(
        self,
        fetcher: SchemaFetcher,
        *,
        ttl: float = DEFAULT_SCHEMA_TTL,
        clock: Callable[[], float] = time.time,
        log: BoundLogger | None = None,
    ) -> None:
        self._fetch = fetcher
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, SchemaCacheEntry] = {}
        self._log = log or _log

    def cached(self, model_id: str) -> JsonDict | None:
        """Fresh cached schema, or None."""
        if (entry := self._entries.get(model_id)) is None:
            return None
        if not entry.fresh(self._clock(), self._ttl):
            del self._entries[model_id]
            return None
        return entry.schema

    def peek(self, model_id: str) -> JsonDict:
        """Cached schema if fresh, else the fallback. Never fetches."""
        schema = self.cached(model_id)
        return fallback_schema(model_id) if schema is None else schema

    async def resolve(self, model_id: str) -> JsonDict:
        """Cached, fetched, or fallback schema. Never raises for fetch failures."""
        if (schema := self.cached(model_id)) is not None:
            return schema
        try:
            schema = await self._fetch(model_id)
        except Exception as exc:
            self._log.warning("schema fetch failed, using fallback", model=model_id, error=str(exc) or type(exc).__name__)
            return fallback_schema(model_id)
        self._entries[model_id] = SchemaCacheEntry(schema, self._clock())
        self._log.debug("schema cached", model=model_id)
        return schema

    def evict_expired(self) -> int:
        now = self._clock()
        stale = [k for k, v in self._entries.items() if not v.fresh(now, self._ttl)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
