"""Retry policy and invoker for upstream calls.

A RetryPolicy is pure configuration. A RetryingInvoker runs one operation
under a policy: failures whose normalized status is client-caused (4xx) are
propagated immediately, everything else is retried with backoff until the
policy's budget is spent, then the last failure propagates.

Rate limiting (429) is retried by default since it is not a permanent
request defect; set `retry_rate_limited=False` to treat it as client-caused.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, computed_field

from falmcp.foundation.errors import ErrorType, classify
from falmcp.runtime.concurrency import checkpoint
from falmcp.runtime.observability import BoundLogger, get_logger

from .backoff import Backoff, ExponentialBackoff

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]

_log = get_logger("falmcp.retry")


class RetryPolicy(BaseModel):
    """Configurable retry policy for upstream calls.

    Total attempts are `max_retries + 1`. With the defaults, a persistently
    failing call is tried 5 times with delays of 2s, 4s, 8s and 16s between.

    Attributes:
        max_retries: Maximum retry attempts after the first (0 = no retries)
        backoff: Backoff strategy for delay calculation
        retry_rate_limited: Whether rate-limit failures are retried
        attempt_timeout: Per-attempt timeout in seconds (None = unbounded)
        on_retry: Optional callback (attempt, failure, delay) before each sleep
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
        revalidate_instances="never",
        json_schema_extra={
            "title": "Retry Policy",
            "examples": [{"max_retries": 4, "retry_rate_limited": True}],
        },
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 4
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    retry_rate_limited: bool = True
    attempt_timeout: PositiveFloat | None = None
    on_retry: Callable[[int, Exception, float], None] | None = Field(default=None, exclude=True, repr=False)

    @computed_field
    @property
    def is_disabled(self) -> bool:
        """Whether retries are effectively disabled."""
        return self.max_retries == 0

    def is_retryable(self, failure: object) -> bool:
        """Whether a failure is transient under this policy."""
        error = classify(failure)
        if error.type is ErrorType.RATE_LIMIT_EXCEEDED:
            return self.retry_rate_limited
        return not 400 <= error.http_status < 500

    def should_retry(self, failure: object, attempt: int) -> bool:
        """Whether to retry after a failure on 0-indexed retry number `attempt`."""
        return attempt < self.max_retries and self.is_retryable(failure)

    def get_delay(self, attempt: int) -> float:
        """Get delay before next retry attempt."""
        return self.backoff.delay(attempt)

    def delays(self) -> tuple[float, ...]:
        """Full delay schedule for a call that never succeeds."""
        return tuple(self.get_delay(i) for i in range(self.max_retries))

    def __hash__(self) -> int:
        return hash((self.max_retries, self.backoff, self.retry_rate_limited, self.attempt_timeout))


# Singleton for no-retry policy
NO_RETRY = RetryPolicy(max_retries=0)


class RetryingInvoker:
    """Runs single-attempt operations under a retry policy.

    Args:
        policy: Default policy (per-call override via `invoke(..., policy=)`)
        sleep: Awaitable delay function, injectable for tests
        log: Logger for retry events (default: falmcp.retry)

    Example:
        >>> invoker = RetryingInvoker(RetryPolicy(max_retries=2))
        >>> result = await invoker.invoke(lambda: client.run("fal-ai/flux/dev", {"prompt": "x"}))
    """

    __slots__ = ("policy", "_sleep", "_log")

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        log: BoundLogger | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._log = log or _log

    async def invoke(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        *,
        label: str | None = None,
    ) -> T:
        """Run `operation` until it succeeds, fails permanently, or retries run out.

        Raises:
            The last failure raised by `operation`, unchanged.
        """
        policy = policy or self.policy
        attempt = 0
        while True:
            try:
                return await self._attempt(operation, policy)
            except Exception as exc:
                if not policy.should_retry(exc, attempt):
                    if attempt and attempt >= policy.max_retries:
                        self._log.warning("retries exhausted", attempts=attempt + 1, label=label)
                    raise
                delay = policy.get_delay(attempt)
                self._log.info(
                    "retrying", attempt=attempt + 1, max_retries=policy.max_retries,
                    delay=round(delay, 3), failure=type(exc).__name__, label=label,
                )
                if policy.on_retry:
                    policy.on_retry(attempt, exc, delay)
                await self._sleep(delay)
                await checkpoint()
                attempt += 1

    @staticmethod
    async def _attempt(operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
        if policy.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), policy.attempt_timeout)
