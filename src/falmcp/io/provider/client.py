"""Async HTTP client for the generation provider.

Thin wrapper over httpx. Non-2xx responses raise ProviderError carrying the
status code, so callers (retry, normalization) can classify them without
parsing text. Transport failures propagate as httpx exceptions unchanged.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Self
from urllib.parse import quote

import httpx
import orjson

from falmcp.runtime.observability import BoundLogger, get_logger

JsonDict = dict[str, Any]

DEFAULT_RUN_URL = "https://fal.run"
DEFAULT_TIMEOUT = 300.0

_log = get_logger("falmcp.provider")


class ProviderError(Exception):
    """Non-success response from the provider.

    Attributes:
        status_code: HTTP status of the response
        message: Detail reported by the provider, or the reason phrase
        error_type: Provider error discriminator, when the body names one
        param: Dotted path of the offending input field, when reported
    """

    __slots__ = ("status_code", "message", "error_type", "param")

    def __init__(self, status_code: int, message: str, error_type: str | None = None, param: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.param = param
        super().__init__(f"HTTP {status_code}: {message}")

    @classmethod
    def from_response(cls, response: httpx.Response) -> ProviderError:
        try:
            body = orjson.loads(response.content) if response.content else None
        except orjson.JSONDecodeError:
            body = None
        message, error_type, param = response.reason_phrase or "Request failed", None, None
        if isinstance(body, dict):
            detail = body.get("detail", body.get("message", body.get("error")))
            if isinstance(detail, str) and detail:
                message = detail
            elif isinstance(detail, list) and detail and isinstance(first := detail[0], dict):
                message = str(first.get("msg") or message)
                loc = [str(p) for p in first.get("loc", ()) if p != "body"]
                param = ".".join(loc) or None
            if isinstance(kind := body.get("error_type", body.get("type")), str):
                error_type = kind
        return cls(response.status_code, message, error_type, param)


def extract_input_schema(openapi: JsonDict) -> JsonDict:
    """Input schema from a model's OpenAPI document.

    Takes the first path's POST (or PUT) JSON request body, preferring its
    `input` property when present.

    Raises:
        ValueError: If the document has no usable request body schema.
    """
    paths = openapi.get("paths") if isinstance(openapi, dict) else None
    if not isinstance(paths, dict) or not paths:
        raise ValueError("No paths found in OpenAPI document")
    first = next(iter(paths.values()))
    operation = (first or {}).get("post") or (first or {}).get("put")
    if not isinstance(operation, dict):
        raise ValueError("No POST/PUT operation found")
    schema = operation.get("requestBody", {}).get("content", {}).get("application/json", {}).get("schema")
    if not isinstance(schema, dict):
        raise ValueError("No request body schema found")
    inner = schema.get("properties", {}).get("input")
    return inner if isinstance(inner, dict) else schema


class FalClient:
    """Provider client for synchronous model runs and schema discovery.

    Args:
        api_key: Provider key, sent as `Authorization: Key <api_key>`
        run_url: Base URL for runs and OpenAPI documents
        timeout: Request timeout in seconds
        transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        log: Logger (default: falmcp.provider)

    Example:
        >>> async with FalClient(api_key="...") as client:
        ...     result = await client.run("fal-ai/flux/dev", {"prompt": "a lighthouse"})
    """

    __slots__ = ("_client", "_log")

    def __init__(
        self,
        api_key: str | None = None,
        *,
        run_url: str = DEFAULT_RUN_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        log: BoundLogger | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Key {api_key}"
        self._client = httpx.AsyncClient(
            base_url=run_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport,
        )
        self._log = log or _log

    async def run(self, model_id: str, arguments: JsonDict) -> Any:
        """Run a model to completion and return its decoded JSON result.

        Raises:
            ProviderError: On a non-2xx response.
            httpx.TransportError: On connection failures or timeouts.
        """
        self._log.debug("run", model=model_id, param_count=len(arguments))
        response = await self._client.post(
            f"/{model_id}", content=orjson.dumps(arguments), headers={"Content-Type": "application/json"},
        )
        return self._decode(response)

    async def fetch_openapi(self, model_id: str) -> JsonDict:
        """Fetch the model's OpenAPI document."""
        response = await self._client.get(f"/{quote(model_id, safe='')}/openapi.json")
        return self._decode(response)

    async def fetch_input_schema(self, model_id: str) -> JsonDict:
        """Fetch and extract the model's input schema."""
        return extract_input_schema(await self.fetch_openapi(model_id))

    def _decode(self, response: httpx.Response) -> Any:
        if not response.is_success:
            error = ProviderError.from_response(response)
            self._log.debug("provider error", status=error.status_code, url=str(response.url))
            raise error
        return orjson.loads(response.content) if response.content else None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None,
    ) -> None:
        await self.aclose()
