"""Unified error handling for falmcp.

- ErrorType: the closed set of error categories
- NormalizedError/NormalizedException: the flat error record and its raisable wrapper
- ErrorNormalizer/normalize: ordered matcher chain mapping any failure to a NormalizedError
- failure_status: HTTP-like status extraction shared with the retry invoker
"""

from .errors import (
    CLIENT_ERROR_TYPES,
    ErrorType,
    NormalizedError,
    NormalizedException,
    idempotency_conflict,
    not_found,
    tool_error_response,
)
from .normalize import (
    DEFAULT_MATCHERS,
    ErrorNormalizer,
    Matcher,
    classify,
    failure_status,
    log_error,
    normalize,
)

__all__ = [
    # Taxonomy
    "ErrorType", "CLIENT_ERROR_TYPES", "NormalizedError", "NormalizedException",
    "idempotency_conflict", "not_found", "tool_error_response",
    # Normalization
    "ErrorNormalizer", "Matcher", "DEFAULT_MATCHERS", "normalize", "classify", "log_error", "failure_status",
]
