"""Collapse arbitrary failures into NormalizedError.

Classification is an ordered chain of matchers. Each matcher inspects one
failure shape and either claims it (returning a NormalizedError) or passes.
The first claim wins; the last matcher claims everything.

Order:
    1. already normalized          -> passthrough
    2. type/range exceptions       -> invalid_request/<exception kind>
    3. timeouts                    -> service_unavailable/request_timeout
    4. plain exceptions            -> processing_error/internal_error
    5. HTTP-like status            -> dispatch by status
    6. provider error_type         -> lookup table
    7. network failure codes       -> service_unavailable/network_error
    8. anything else               -> processing_error/unknown_error

Example:
    >>> err = normalize({"status": 429}, request_id="req-1")
    >>> err.type, err.code
    (<ErrorType.RATE_LIMIT_EXCEEDED: 'rate_limit_exceeded'>, 'rate_limit_exceeded')
"""

from __future__ import annotations

import errno
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from falmcp.runtime.observability import BoundLogger, get_logger

from .errors import CLIENT_ERROR_TYPES, ErrorType, NormalizedError, NormalizedException

Matcher = Callable[[object, str | None, str | None], NormalizedError | None]

_log = get_logger("falmcp.errors")

_RANGE_ERRORS: tuple[type[Exception], ...] = (TypeError, ValueError, IndexError, OverflowError)
_TIMEOUT_ERRORS: tuple[type[Exception], ...] = (TimeoutError, httpx.TimeoutException)
_NETWORK_ERRORS: tuple[type[Exception], ...] = (ConnectionRefusedError, httpx.NetworkError)
_NETWORK_CODES: frozenset[str] = frozenset({"ECONNREFUSED", "ETIMEDOUT"})
_NETWORK_ERRNOS: frozenset[int] = frozenset({errno.ECONNREFUSED, errno.ETIMEDOUT})

_DEFAULT_MESSAGE = "Unknown error occurred"

# Provider discriminator -> (type, code); unknown discriminators fall back to _PROVIDER_DEFAULT
_PROVIDER_ERRORS: dict[str, tuple[ErrorType, str]] = {
    "validation_error": (ErrorType.INVALID_REQUEST, "validation_error"),
    "rate_limit_error": (ErrorType.RATE_LIMIT_EXCEEDED, "rate_limit_exceeded"),
    "service_unavailable": (ErrorType.SERVICE_UNAVAILABLE, "fal_service_unavailable"),
}
_PROVIDER_DEFAULT: tuple[ErrorType, str] = (ErrorType.PROCESSING_ERROR, "fal_error")


# ═══════════════════════════════════════════════════════════════════════════════
# Field Extraction
# ═══════════════════════════════════════════════════════════════════════════════


def _field(failure: object, name: str) -> Any:
    """Read a field from a mapping or an attribute from an object."""
    if isinstance(failure, Mapping):
        return failure.get(name)
    return getattr(failure, name, None)


def _as_status(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


def failure_status(failure: object) -> int | None:
    """HTTP-like status carried by a failure, if any.

    Looks at `status`, `status_code`, `statusCode`, then `response.status_code`.
    Normalized errors report the status equivalent of their category.
    """
    if isinstance(failure, NormalizedException):
        return failure.error.http_status
    if isinstance(failure, NormalizedError):
        return failure.http_status
    for name in ("status", "status_code", "statusCode"):
        if (status := _as_status(_field(failure, name))) is not None:
            return status
    if (response := _field(failure, "response")) is not None:
        return _as_status(getattr(response, "status_code", None))
    return None


def _message(failure: object, default: str = _DEFAULT_MESSAGE) -> str:
    """Best-effort message from `message`, `error`, `detail`, or the exception text."""
    for name in ("message", "error", "detail"):
        if isinstance(value := _field(failure, name), str) and value:
            return value
    if isinstance(failure, BaseException) and (text := str(failure)):
        return text
    return default


def _with_context(message: str, context: str | None) -> str:
    return f"{context}: {message}" if context else message


def _is_network_failure(failure: object) -> bool:
    if isinstance(failure, _NETWORK_ERRORS):
        return True
    code = _field(failure, "code")
    if isinstance(code, str) and code in _NETWORK_CODES:
        return True
    return isinstance(failure, OSError) and failure.errno in _NETWORK_ERRNOS


def _param(failure: object) -> str | None:
    return value if isinstance(value := _field(failure, "param"), str) and value else None


# ═══════════════════════════════════════════════════════════════════════════════
# Matchers (evaluated in order)
# ═══════════════════════════════════════════════════════════════════════════════


def match_normalized(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if isinstance(failure, NormalizedException):
        return failure.error.with_request_id(request_id)
    if isinstance(failure, NormalizedError):
        return failure.with_request_id(request_id)
    if isinstance(failure, Mapping) and {"type", "code", "message"} <= failure.keys():
        if isinstance(kind := failure["type"], str) and kind in ErrorType._value2member_map_:
            try:
                error = NormalizedError.model_validate({
                    k: failure[k] for k in ("type", "code", "message", "param", "request_id") if failure.get(k) is not None
                })
            except ValidationError:
                return None
            return error.with_request_id(request_id)
    return None


def match_range(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if not isinstance(failure, _RANGE_ERRORS):
        return None
    return NormalizedError.create(
        ErrorType.INVALID_REQUEST, type(failure).__name__.lower(),
        _with_context(_message(failure, type(failure).__name__), context), request_id=request_id,
    )


def match_timeout(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    flagged = _field(failure, "timeout") is True or type(failure).__name__ == "TimeoutError"
    if not (isinstance(failure, _TIMEOUT_ERRORS) or flagged):
        return None
    return NormalizedError.create(
        ErrorType.SERVICE_UNAVAILABLE, "request_timeout",
        _with_context(_message(failure, "Request timed out"), context), request_id=request_id,
    )


def match_exception(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if not isinstance(failure, Exception):
        return None
    if failure_status(failure) is not None or _field(failure, "error_type") or _is_network_failure(failure):
        return None
    return NormalizedError.create(
        ErrorType.PROCESSING_ERROR, "internal_error",
        _with_context(_message(failure, type(failure).__name__), context), request_id=request_id,
    )


def match_status(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if (status := failure_status(failure)) is None:
        return None
    message = _with_context(_message(failure), context)
    match status:
        case 400:
            args = (ErrorType.INVALID_REQUEST, "bad_request", message, _param(failure))
        case 401:
            args = (ErrorType.INVALID_REQUEST, "unauthorized", "Invalid or missing API key", None)
        case 403:
            args = (ErrorType.INVALID_REQUEST, "forbidden", "Access denied", None)
        case 404:
            args = (ErrorType.INVALID_REQUEST, "not_found", message, None)
        case 409:
            args = (ErrorType.REQUEST_NOT_IDEMPOTENT, "idempotency_conflict", message, None)
        case 422:
            args = (ErrorType.INVALID_REQUEST, "validation_error", message, _param(failure))
        case 429:
            args = (ErrorType.RATE_LIMIT_EXCEEDED, "rate_limit_exceeded",
                    "Rate limit exceeded. Please try again later.", None)
        case _ if status >= 500:
            args = (ErrorType.SERVICE_UNAVAILABLE, "service_error", "Service temporarily unavailable", None)
        case _ if 400 <= status < 500:
            args = (ErrorType.INVALID_REQUEST, f"http_{status}", message, None)
        case _:
            args = (ErrorType.PROCESSING_ERROR, "http_error", message, None)
    return NormalizedError.create(*args, request_id=request_id)


def match_provider(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if not isinstance(error_type := _field(failure, "error_type"), str) or not error_type:
        return None
    kind, code = _PROVIDER_ERRORS.get(error_type, _PROVIDER_DEFAULT)
    param = _param(failure) if kind is ErrorType.INVALID_REQUEST else None
    return NormalizedError.create(kind, code, _message(failure, "Fal AI error occurred"), param, request_id)


def match_network(failure: object, request_id: str | None, context: str | None) -> NormalizedError | None:
    if not _is_network_failure(failure):
        return None
    return NormalizedError.create(
        ErrorType.SERVICE_UNAVAILABLE, "network_error", "Failed to connect to service", request_id=request_id,
    )


def match_unknown(failure: object, request_id: str | None, context: str | None) -> NormalizedError:
    if isinstance(failure, Mapping) or hasattr(failure, "__dict__"):
        message = _with_context(_message(failure), context)
    else:
        message = str(failure)
    return NormalizedError.create(ErrorType.PROCESSING_ERROR, "unknown_error", message, request_id=request_id)


DEFAULT_MATCHERS: tuple[Matcher, ...] = (
    match_normalized,
    match_range,
    match_timeout,
    match_exception,
    match_status,
    match_provider,
    match_network,
    match_unknown,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Normalizer
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorNormalizer:
    """Ordered matcher chain with logging.

    Every normalization is logged: warning for client categories
    (invalid_request, request_not_idempotent), error for everything else.

    Args:
        matchers: Matchers in priority order; the last must always match
        log: Logger for the warning/error split (default: falmcp.errors)
    """

    __slots__ = ("_matchers", "_log")

    def __init__(self, matchers: Sequence[Matcher] = DEFAULT_MATCHERS, *, log: BoundLogger | None = None) -> None:
        self._matchers = tuple(matchers)
        self._log = log or _log

    def classify(self, failure: object, request_id: str | None = None, context: str | None = None) -> NormalizedError:
        """Run the matcher chain without logging."""
        for matcher in self._matchers:
            if (error := matcher(failure, request_id, context)) is not None:
                return error
        return match_unknown(failure, request_id, context)

    def normalize(self, failure: object, request_id: str | None = None, context: str | None = None) -> NormalizedError:
        error = self.classify(failure, request_id, context)
        self.log_error(error, context)
        return error

    __call__ = normalize

    def log_error(self, error: NormalizedError, context: str | None = None) -> None:
        meta: dict[str, Any] = {"type": error.type.value, "code": error.code}
        if error.param:
            meta["param"] = error.param
        if error.request_id:
            meta["request_id"] = error.request_id
        if context:
            meta["context"] = context
        if error.type in CLIENT_ERROR_TYPES:
            self._log.warning(error.message, **meta)
        else:
            self._log.error(error.message, **meta)


_default = ErrorNormalizer()


def normalize(failure: object, request_id: str | None = None, context: str | None = None) -> NormalizedError:
    """Normalize with the default matcher chain."""
    return _default.normalize(failure, request_id, context)


def log_error(error: NormalizedError, context: str | None = None) -> None:
    _default.log_error(error, context)


def classify(failure: object) -> NormalizedError:
    """Classify with the default matcher chain, without logging."""
    return _default.classify(failure)
