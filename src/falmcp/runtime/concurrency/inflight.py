"""Single-flight tracking for keyed critical sections.

Concurrent callers claiming the same key run one at a time: the second
claimant waits for the first to release before entering. Callers use this
around lookup -> execute -> store so that at most one upstream call per
idempotency key is ever in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


async def checkpoint() -> None:
    """Cooperative cancellation checkpoint.

    Yields control to the event loop, allowing pending cancellations
    to be processed.
    """
    await asyncio.sleep(0)


class InFlight:
    """Keyed single-flight gate.

    Example:
        >>> inflight = InFlight()
        >>> async with inflight.claim("k1"):
        ...     cached = store.lookup("k1", args) or await call()
    """

    __slots__ = ("_pending",)

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[None]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    @asynccontextmanager
    async def claim(self, key: str) -> AsyncIterator[None]:
        """Hold `key` for the duration of the block, waiting out any current holder."""
        while (pending := self._pending.get(key)) is not None:
            # shield: a cancelled waiter must not cancel the holder's marker
            await asyncio.shield(pending)
        released: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending[key] = released
        try:
            yield
        finally:
            del self._pending[key]
            released.set_result(None)
