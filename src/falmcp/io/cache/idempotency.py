"""Idempotency store: time-bounded key -> response cache with conflict detection.

Keys are caller-supplied. Each live entry remembers a digest of the
parameters it was created with; reusing the key with different parameters
raises a `request_not_idempotent` conflict instead of returning another
request's result. A key is write-once while live.

Expiry is lazy (checked on every read of a key) plus a periodic sweep
started with `start()`.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import orjson

from falmcp.foundation.errors import idempotency_conflict
from falmcp.runtime.observability import BoundLogger, get_logger

if TYPE_CHECKING:
    from pydantic import BaseModel

DEFAULT_TTL: float = 86400.0  # 24 hours
DEFAULT_SWEEP_INTERVAL: float = 3600.0

_log = get_logger("falmcp.idempotency")


def parameters_digest(parameters: BaseModel | dict[str, Any] | Any) -> str:
    """SHA-256 over a key-sorted serialization, so field order never matters."""
    if hasattr(parameters, "model_dump"):
        parameters = parameters.model_dump(mode="json")
    canonical = orjson.dumps(parameters, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS, default=str)
    return hashlib.sha256(canonical).hexdigest()


@dataclass(slots=True)
class CacheEntry:
    """A stored response and the parameter digest it was produced for."""

    key: str
    digest: str
    response: Any
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class IdempotencyStore:
    """In-memory idempotency store with TTL-based expiration.

    Not locked: all mutation happens on one event loop. Callers that run
    lookup -> execute -> store for a key should hold that key in an InFlight
    gate so concurrent same-key calls serialize.

    Args:
        ttl: Entry lifetime in seconds (default: 24h)
        clock: Wall-clock source, injectable for tests
        sweep_interval: Seconds between background sweeps once started
        log: Logger (default: falmcp.idempotency)

    Example:
        >>> store = IdempotencyStore(ttl=60)
        >>> store.lookup("k1", {"prompt": "x"}) is None
        True
        >>> store.store("k1", {"prompt": "x"}, {"images": []})
        >>> store.lookup("k1", {"prompt": "x"})
        {'images': []}
    """

    __slots__ = ("_entries", "_ttl", "_clock", "_sweep_interval", "_sweeper", "_log")

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        log: BoundLogger | None = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._entries: dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._sweeper: asyncio.Task[None] | None = None
        self._log = log or _log

    @property
    def ttl(self) -> float:
        return self._ttl

    def _live(self, key: str) -> CacheEntry | None:
        """Entry for key if live; drops it if expired."""
        if (entry := self._entries.get(key)) is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._log.debug("entry expired", key=key)
            return None
        return entry

    def lookup(self, key: str, parameters: Any, *, request_id: str | None = None) -> Any | None:
        """Cached response for key, or None on miss.

        Raises:
            NormalizedException: request_not_idempotent if a live entry exists for
                key with a different parameter digest.
        """
        if (entry := self._live(key)) is None:
            return None
        if entry.digest != parameters_digest(parameters):
            self._log.debug("digest mismatch", key=key)
            raise idempotency_conflict(request_id)
        return entry.response

    def store(self, key: str, parameters: Any, response: Any, *, request_id: str | None = None) -> None:
        """Record a successful response. Re-storing with the same digest is a no-op.

        Raises:
            NormalizedException: request_not_idempotent if a live entry exists for
                key with a different parameter digest; the entry is left unchanged.
        """
        digest = parameters_digest(parameters)
        if (entry := self._live(key)) is not None:
            if entry.digest != digest:
                raise idempotency_conflict(request_id)
            return
        self._entries[key] = CacheEntry(key, digest, response, self._clock() + self._ttl)
        self._log.debug("entry stored", key=key)

    def has(self, key: str) -> bool:
        return self._live(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def evict_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = self._clock()
        expired = [k for k, v in self._entries.items() if v.expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._log.debug("expired entries evicted", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Entry count and expiry bounds (ISO-8601 UTC, None when empty)."""
        expiries = [e.expires_at for e in self._entries.values()]
        return {
            "size": len(self._entries),
            "oldest_expiry": _iso(min(expiries)) if expiries else None,
            "newest_expiry": _iso(max(expiries)) if expiries else None,
        }

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic sweep on the running event loop. Idempotent."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep(), name="idempotency-sweep")

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.evict_expired()

    async def shutdown(self) -> None:
        """Stop the sweep and drop every entry."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self.clear()


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=UTC).isoformat()
