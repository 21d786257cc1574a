"""Flat error taxonomy shared by every failure that crosses the tool boundary.

A NormalizedError is the only error shape a caller ever sees: five categories,
a short machine code, a safe human message, and optional field/correlation ids.
Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Self

import orjson
from pydantic import BaseModel, ConfigDict, Field, computed_field


class ErrorType(StrEnum):
    """Closed set of error categories.

    Client categories are never retried; the rest may be, per retry policy.
    """
    INVALID_REQUEST = "invalid_request"
    REQUEST_NOT_IDEMPOTENT = "request_not_idempotent"
    PROCESSING_ERROR = "processing_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


CLIENT_ERROR_TYPES: frozenset[ErrorType] = frozenset({
    ErrorType.INVALID_REQUEST,
    ErrorType.REQUEST_NOT_IDEMPOTENT,
})

# HTTP-equivalent status per category
_HTTP_STATUS: dict[ErrorType, int] = {
    ErrorType.INVALID_REQUEST: 400,
    ErrorType.REQUEST_NOT_IDEMPOTENT: 409,
    ErrorType.PROCESSING_ERROR: 500,
    ErrorType.SERVICE_UNAVAILABLE: 503,
    ErrorType.RATE_LIMIT_EXCEEDED: 429,
}


class NormalizedError(BaseModel):
    """Immutable, serializable error record.

    Attributes:
        type: Error category
        code: Machine-readable discriminator within the category
        message: Human-readable text, never a secret or stack trace
        param: JSONPath of the offending input field, if known
        request_id: Correlation id for tracing
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        revalidate_instances="never",
        json_schema_extra={
            "title": "Normalized Error",
            "examples": [{
                "type": "request_not_idempotent",
                "code": "idempotency_conflict",
                "message": "Idempotency key reused with different parameters",
            }],
        },
    )

    type: ErrorType
    code: Annotated[str, Field(min_length=1)]
    message: str
    param: str | None = None
    request_id: str | None = None

    @computed_field
    @property
    def http_status(self) -> int:
        """HTTP-equivalent status for the category."""
        return _HTTP_STATUS[self.type]

    @computed_field
    @property
    def is_client_error(self) -> bool:
        """Whether the caller caused the failure (never retried)."""
        return self.type in CLIENT_ERROR_TYPES

    @classmethod
    def create(
        cls,
        type: ErrorType | str,  # noqa: A002 - field name is part of the wire format
        code: str,
        message: str,
        param: str | None = None,
        request_id: str | None = None,
    ) -> Self:
        """Factory bypassing validation for hot paths."""
        return cls.model_construct(
            type=ErrorType(type), code=code, message=message, param=param, request_id=request_id,
        )

    def with_request_id(self, request_id: str | None) -> Self:
        """Fill in the request id without overwriting an existing one."""
        if request_id is None or self.request_id is not None:
            return self
        return self.model_copy(update={"request_id": request_id})

    def to_payload(self) -> dict[str, Any]:
        """Wire representation, omitting unset optional fields."""
        payload: dict[str, Any] = {"type": self.type.value, "code": self.code, "message": self.message}
        if self.param:
            payload["param"] = self.param
        if self.request_id:
            payload["request_id"] = self.request_id
        return payload

    def render(self) -> str:
        """Indented JSON text of the payload."""
        return orjson.dumps(self.to_payload(), option=orjson.OPT_INDENT_2).decode()

    __str__ = render


class NormalizedException(Exception):
    """Exception wrapping a NormalizedError for raising."""

    __slots__ = ("error",)

    def __init__(self, error: NormalizedError) -> None:
        self.error = error
        super().__init__(error.message)

    @classmethod
    def create(
        cls,
        type: ErrorType | str,  # noqa: A002
        code: str,
        message: str,
        param: str | None = None,
        request_id: str | None = None,
    ) -> Self:
        return cls(NormalizedError.create(type, code, message, param, request_id))


def idempotency_conflict(request_id: str | None = None) -> NormalizedException:
    """Conflict raised when a live key is reused with different parameters."""
    return NormalizedException.create(
        ErrorType.REQUEST_NOT_IDEMPOTENT,
        "idempotency_conflict",
        "Idempotency key reused with different parameters",
        request_id=request_id,
    )


def not_found(message: str, request_id: str | None = None) -> NormalizedException:
    return NormalizedException.create(ErrorType.INVALID_REQUEST, "not_found", message, request_id=request_id)


def tool_error_response(error: NormalizedError) -> dict[str, Any]:
    """MCP tool-call envelope for a failure."""
    return {"content": [{"type": "text", "text": error.render()}], "isError": True}
