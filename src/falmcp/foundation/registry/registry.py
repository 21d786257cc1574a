"""Tool registry: binds catalog models to callable names and runs invocations.

The registry composes the idempotency store, schema resolver, and retrying
invoker into the invoke/list surface exposed by the transports. Every
failure leaves as a NormalizedError value; nothing raw crosses `invoke`.

Invocation with an idempotency key runs lookup -> execute -> store while
holding the key in an InFlight gate, so two concurrent calls with the same
key produce at most one upstream call. The second caller sees the first's
cached result, a conflict, or (if the first failed) runs fresh.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Iterator
from datetime import UTC, datetime
from typing import Any

from falmcp.catalog import CatalogModel
from falmcp.foundation.errors import ErrorNormalizer, NormalizedError, not_found
from falmcp.io.cache import IdempotencyStore
from falmcp.io.schema import SchemaResolver
from falmcp.runtime.concurrency import InFlight
from falmcp.runtime.observability import BoundLogger, get_logger
from falmcp.runtime.retry import RetryingInvoker

JsonDict = dict[str, Any]
Runner = Callable[[str, JsonDict], Awaitable[Any]]

_log = get_logger("falmcp.registry")


class ToolRegistry:
    """Catalog-backed registry of invokable tools.

    Args:
        models: Catalog entries to expose as tools
        run: Async upstream call, `run(model_id, arguments) -> result`
        store: Idempotency store (shared by reference, not owned)
        schemas: Schema resolver (shared by reference, not owned)
        invoker: Retrying invoker wrapping each upstream call
        normalizer: Error normalizer for failures
        log: Logger (default: falmcp.registry)

    Example:
        >>> registry = ToolRegistry(models, client.run, store=IdempotencyStore(), schemas=resolver)
        >>> result = await registry.invoke("fal_flux_dev", {"prompt": "x"}, idempotency_key="k1")
        >>> isinstance(result, NormalizedError)
        False
    """

    __slots__ = ("_tools", "_run", "_store", "_schemas", "_invoker", "_normalizer", "_inflight", "_log")

    def __init__(
        self,
        models: Iterable[CatalogModel],
        run: Runner,
        *,
        store: IdempotencyStore,
        schemas: SchemaResolver,
        invoker: RetryingInvoker | None = None,
        normalizer: ErrorNormalizer | None = None,
        log: BoundLogger | None = None,
    ) -> None:
        self._tools: dict[str, CatalogModel] = {}
        self._run = run
        self._store = store
        self._schemas = schemas
        self._invoker = invoker or RetryingInvoker()
        self._normalizer = normalizer or ErrorNormalizer()
        self._inflight = InFlight()
        self._log = log or _log
        for model in models:
            self.register(model)

    def register(self, model: CatalogModel) -> None:
        """Expose a model under its derived tool name."""
        if (name := model.tool_name) in self._tools:
            raise ValueError(f"Tool '{name}' already registered (slug {self._tools[name].slug!r})")
        self._tools[name] = model

    def unregister(self, name: str) -> bool:
        """Remove a tool by name. Returns True if found."""
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> CatalogModel | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[CatalogModel]:
        return iter(self._tools.values())

    @property
    def models(self) -> list[CatalogModel]:
        return list(self._tools.values())

    @property
    def store(self) -> IdempotencyStore:
        return self._store

    @property
    def schemas(self) -> SchemaResolver:
        return self._schemas

    # ─────────────────────────────────────────────────────────────────
    # Listing
    # ─────────────────────────────────────────────────────────────────

    def list_tools(self) -> list[JsonDict]:
        """Tool descriptors in catalog order. Uses cached or inferred schemas, never fetches."""
        return [
            {"name": name, "description": m.format_description(), "inputSchema": self._schemas.peek(m.slug)}
            for name, m in self._tools.items()
        ]

    async def describe(self, name: str) -> JsonDict:
        """Tool descriptor with a resolved schema.

        Raises:
            NormalizedException: invalid_request/not_found for unknown names.
        """
        if (model := self._tools.get(name)) is None:
            raise not_found(f"Tool not found: {name}")
        return {
            "name": name,
            "description": model.format_description(),
            "inputSchema": await self._schemas.resolve(model.slug),
            "category": model.category,
            "pricing": model.pricing.display,
            "examples": model.examples.model_dump(exclude_none=True),
        }

    # ─────────────────────────────────────────────────────────────────
    # Invocation
    # ─────────────────────────────────────────────────────────────────

    async def invoke(
        self,
        name: str,
        arguments: JsonDict | None = None,
        *,
        idempotency_key: str | None = None,
        request_id: str | None = None,
    ) -> JsonDict | NormalizedError:
        """Invoke a tool. Returns the response document or a NormalizedError.

        An empty idempotency key is treated as no key.
        """
        request_id = request_id or str(uuid.uuid4())
        context = f"Tool: {name}"
        if (model := self._tools.get(name)) is None:
            return self._normalizer.normalize(not_found(f"Tool not found: {name}"), request_id, context)

        arguments = arguments or {}
        started = time.perf_counter()
        self._log.info("tool invoked", tool=name, model=model.slug, request_id=request_id,
                       idempotency_key=idempotency_key)
        try:
            if not idempotency_key:
                response = await self._execute(model, arguments, request_id, str(uuid.uuid4()))
            else:
                response = await self._execute_once(model, arguments, request_id, idempotency_key)
        except Exception as exc:
            self._log.debug("tool failed", tool=name, request_id=request_id,
                            duration_ms=round((time.perf_counter() - started) * 1000, 1))
            return self._normalizer.normalize(exc, request_id, context)
        self._log.info("tool completed", tool=name, request_id=request_id,
                       cached=response["metadata"]["cached"],
                       duration_ms=round((time.perf_counter() - started) * 1000, 1))
        return response

    async def _execute_once(self, model: CatalogModel, arguments: JsonDict, request_id: str, key: str) -> JsonDict:
        fingerprint = {"model": model.slug, "arguments": arguments}
        async with self._inflight.claim(key):
            if (cached := self._store.lookup(key, fingerprint, request_id=request_id)) is not None:
                return {**cached, "request_id": request_id, "metadata": {**cached["metadata"], "cached": True}}
            response = await self._execute(model, arguments, request_id, key)
            self._store.store(key, fingerprint, response, request_id=request_id)
            return response

    async def _execute(self, model: CatalogModel, arguments: JsonDict, request_id: str, key: str) -> JsonDict:
        # Advertised only; the provider validates its own input
        await self._schemas.resolve(model.slug)
        data = await self._invoker.invoke(lambda: self._run(model.slug, arguments), label=model.slug)
        return {
            "data": data,
            "request_id": request_id,
            "metadata": {
                "model": model.slug,
                "timestamp": datetime.now(UTC).isoformat(),
                "idempotency_key": key,
                "cached": False,
            },
        }
