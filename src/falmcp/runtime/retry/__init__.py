"""Retry policies for upstream calls.

Provides bounded exponential-backoff retry that never retries
client-caused failures.

Example:
    >>> from falmcp.runtime.retry import RetryingInvoker, RetryPolicy, ExponentialBackoff
    >>>
    >>> invoker = RetryingInvoker(RetryPolicy(
    ...     max_retries=4,
    ...     backoff=ExponentialBackoff(base=2.0, multiplier=2.0),
    ... ))
    >>> result = await invoker.invoke(lambda: client.run(model_id, arguments))
"""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import NO_RETRY, RetryingInvoker, RetryPolicy

__all__ = [
    # Backoff strategies
    "Backoff",
    "ExponentialBackoff",
    "ConstantBackoff",
    # Policy
    "RetryPolicy",
    "NO_RETRY",
    # Execution
    "RetryingInvoker",
]
