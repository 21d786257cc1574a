"""Tests for the tool registry: idempotent invocation, retry, and failure normalization."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from falmcp.catalog import CatalogModel
from falmcp.foundation.errors import ErrorType, NormalizedError, NormalizedException
from falmcp.io.provider import ProviderError
from falmcp.io.schema import fallback_schema
from falmcp.runtime.retry import NO_RETRY

TOOL = "fal_flux_dev"
ARGS = {"prompt": "a lighthouse at dusk", "num_images": 1}


# ═════════════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════════════


def test_registers_catalog(registry, models: list[CatalogModel]) -> None:
    assert len(registry) == len(models)
    assert TOOL in registry
    assert registry.get(TOOL).slug == "fal-ai/flux/dev"
    assert [m.slug for m in registry] == [m.slug for m in models]


def test_duplicate_register_rejected(registry, models: list[CatalogModel]) -> None:
    with pytest.raises(ValueError, match="already registered"):
        registry.register(models[0])
    assert registry.unregister(TOOL) is True
    assert registry.unregister(TOOL) is False
    registry.register(models[0])
    assert TOOL in registry


@pytest.mark.asyncio
async def test_list_tools_never_fetches(registry, fetcher) -> None:
    tools = registry.list_tools()
    assert len(tools) == 6
    assert tools[0] == {
        "name": TOOL,
        "description": registry.get(TOOL).format_description(),
        "inputSchema": fallback_schema("fal-ai/flux/dev"),
    }
    assert fetcher.calls == []

    await registry.invoke(TOOL, ARGS)
    assert registry.list_tools()[0]["inputSchema"] == fetcher.schema


@pytest.mark.asyncio
async def test_describe(registry, fetcher) -> None:
    described = await registry.describe(TOOL)
    assert described["inputSchema"] == fetcher.schema
    assert described["category"] == "Text-to-Image"
    assert described["pricing"] == "$0.025 per megapixel"
    assert "python" in described["examples"]

    with pytest.raises(NormalizedException) as info:
        await registry.describe("fal_missing")
    assert info.value.error.code == "not_found"


# ═════════════════════════════════════════════════════════════════════════════
# Invocation
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_invoke_success(registry, provider) -> None:
    result = await registry.invoke(TOOL, ARGS, idempotency_key="k1", request_id="req-1")

    assert not isinstance(result, NormalizedError)
    assert result["data"]["model"] == "fal-ai/flux/dev"
    assert result["request_id"] == "req-1"
    assert result["metadata"]["model"] == "fal-ai/flux/dev"
    assert result["metadata"]["idempotency_key"] == "k1"
    assert result["metadata"]["cached"] is False
    assert result["metadata"]["timestamp"].endswith("+00:00")
    assert provider.calls == [("fal-ai/flux/dev", ARGS)]


@pytest.mark.asyncio
async def test_same_key_replays_cached_result(registry, provider) -> None:
    first = await registry.invoke(TOOL, ARGS, idempotency_key="k1", request_id="req-1")
    second = await registry.invoke(TOOL, dict(reversed(ARGS.items())), idempotency_key="k1", request_id="req-2")

    assert len(provider.calls) == 1
    assert second["data"] == first["data"]
    assert second["request_id"] == "req-2"
    assert second["metadata"]["cached"] is True
    assert second["metadata"]["timestamp"] == first["metadata"]["timestamp"]
    assert first["metadata"]["cached"] is False


@pytest.mark.asyncio
async def test_conflicting_reuse(registry, provider, capture) -> None:
    first = await registry.invoke(TOOL, ARGS, idempotency_key="k1")
    conflict = await registry.invoke(TOOL, {"prompt": "something else"}, idempotency_key="k1", request_id="req-2")

    assert isinstance(conflict, NormalizedError)
    assert (conflict.type, conflict.code) == (ErrorType.REQUEST_NOT_IDEMPOTENT, "idempotency_conflict")
    assert conflict.request_id == "req-2"
    assert len(provider.calls) == 1
    assert "Idempotency key reused with different parameters" in capture.events("warning")

    replay = await registry.invoke(TOOL, ARGS, idempotency_key="k1")
    assert replay["data"] == first["data"]


@pytest.mark.asyncio
async def test_same_key_other_tool_conflicts(registry, provider) -> None:
    await registry.invoke(TOOL, ARGS, idempotency_key="k1")
    result = await registry.invoke("fal_flux_pro_kontext", ARGS, idempotency_key="k1")
    assert isinstance(result, NormalizedError)
    assert result.type is ErrorType.REQUEST_NOT_IDEMPOTENT
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_no_key_always_executes(registry, provider) -> None:
    first = await registry.invoke(TOOL, ARGS)
    second = await registry.invoke(TOOL, ARGS)

    assert len(provider.calls) == 2
    assert first["metadata"]["idempotency_key"] != second["metadata"]["idempotency_key"]
    assert first["request_id"] != second["request_id"]
    assert len(registry.store) == 0


@pytest.mark.asyncio
async def test_empty_key_is_no_key(registry, provider) -> None:
    first = await registry.invoke(TOOL, {"prompt": "x"}, idempotency_key="")
    second = await registry.invoke(TOOL, {"prompt": "y"}, idempotency_key="")

    assert not isinstance(second, NormalizedError)
    assert len(provider.calls) == 2
    assert first["metadata"]["idempotency_key"] != ""
    assert second["metadata"]["cached"] is False
    assert len(registry.store) == 0


@pytest.mark.asyncio
async def test_expired_key_executes_again(registry, provider, clock) -> None:
    await registry.invoke(TOOL, ARGS, idempotency_key="k1")
    clock.advance(86400)
    result = await registry.invoke(TOOL, {"prompt": "new"}, idempotency_key="k1")
    assert result["metadata"]["cached"] is False
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_unknown_tool(registry, provider, fetcher) -> None:
    result = await registry.invoke("fal_missing", ARGS, idempotency_key="k1", request_id="req-1")

    assert isinstance(result, NormalizedError)
    assert (result.type, result.code) == (ErrorType.INVALID_REQUEST, "not_found")
    assert result.message == "Tool not found: fal_missing"
    assert result.request_id == "req-1"
    assert provider.calls == [] and fetcher.calls == []
    assert len(registry.store) == 0


@pytest.mark.asyncio
async def test_schema_fetch_failure_still_invokes(registry, provider, fetcher) -> None:
    fetcher.error = RuntimeError("schema service down")
    result = await registry.invoke(TOOL, ARGS)
    assert not isinstance(result, NormalizedError)
    assert len(provider.calls) == 1


# ═════════════════════════════════════════════════════════════════════════════
# Failures and Retry
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_failure_is_normalized_and_not_cached(make_registry, scripted, capture) -> None:
    provider = scripted(RuntimeError("boom"))
    registry = make_registry(provider, policy=NO_RETRY)

    result = await registry.invoke(TOOL, ARGS, idempotency_key="k1", request_id="req-1")

    assert isinstance(result, NormalizedError)
    assert (result.type, result.code) == (ErrorType.PROCESSING_ERROR, "internal_error")
    assert result.message == "Tool: fal_flux_dev: boom"
    assert result.request_id == "req-1"
    assert not registry.store.has("k1")
    assert "Tool: fal_flux_dev: boom" in capture.events("error")

    retried = await registry.invoke(TOOL, ARGS, idempotency_key="k1")
    assert retried["metadata"]["cached"] is False
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_client_error_not_retried(make_registry, scripted, sleep) -> None:
    provider = scripted(ProviderError(422, "field required", param="image_url"))
    registry = make_registry(provider)

    result = await registry.invoke(TOOL, ARGS)

    assert (result.type, result.code, result.param) == (ErrorType.INVALID_REQUEST, "validation_error", "image_url")
    assert result.message == "Tool: fal_flux_dev: field required"
    assert len(provider.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transient_failure_recovers(make_registry, scripted, sleep) -> None:
    provider = scripted(ProviderError(503, "Service Unavailable"), httpx.ReadTimeout("read timed out"))
    registry = make_registry(provider)

    result = await registry.invoke(TOOL, ARGS, idempotency_key="k1")

    assert not isinstance(result, NormalizedError)
    assert len(provider.calls) == 3
    assert sleep.delays == [2.0, 4.0]
    assert registry.store.has("k1")


@pytest.mark.asyncio
async def test_retries_exhausted(make_registry, scripted, sleep) -> None:
    provider = scripted(*(ProviderError(503, "Service Unavailable") for _ in range(5)))
    registry = make_registry(provider)

    result = await registry.invoke(TOOL, ARGS, idempotency_key="k1")

    assert (result.type, result.code) == (ErrorType.SERVICE_UNAVAILABLE, "service_error")
    assert len(provider.calls) == 5
    assert sleep.delays == [2.0, 4.0, 8.0, 16.0]
    assert not registry.store.has("k1")


# ═════════════════════════════════════════════════════════════════════════════
# Concurrency
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_concurrent_same_key_single_upstream_call(make_registry, scripted) -> None:
    provider = scripted(delay=0.01)
    registry = make_registry(provider)

    first, second = await asyncio.gather(
        registry.invoke(TOOL, ARGS, idempotency_key="k1"),
        registry.invoke(TOOL, ARGS, idempotency_key="k1"),
    )

    assert len(provider.calls) == 1
    assert first["data"] == second["data"]
    assert [first["metadata"]["cached"], second["metadata"]["cached"]] == [False, True]


@pytest.mark.asyncio
async def test_concurrent_same_key_different_arguments(make_registry, scripted) -> None:
    provider = scripted(delay=0.01)
    registry = make_registry(provider)

    first, second = await asyncio.gather(
        registry.invoke(TOOL, ARGS, idempotency_key="k1"),
        registry.invoke(TOOL, {"prompt": "other"}, idempotency_key="k1"),
    )

    assert len(provider.calls) == 1
    assert not isinstance(first, NormalizedError)
    assert isinstance(second, NormalizedError)
    assert second.type is ErrorType.REQUEST_NOT_IDEMPOTENT


@pytest.mark.asyncio
async def test_concurrent_waiter_runs_after_failed_holder(make_registry, scripted) -> None:
    provider = scripted(RuntimeError("boom"), delay=0.01)
    registry = make_registry(provider, policy=NO_RETRY)

    first, second = await asyncio.gather(
        registry.invoke(TOOL, ARGS, idempotency_key="k1"),
        registry.invoke(TOOL, ARGS, idempotency_key="k1"),
    )

    assert isinstance(first, NormalizedError)
    assert second["metadata"]["cached"] is False
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_distinct_keys_run_in_parallel(make_registry, scripted) -> None:
    provider = scripted(delay=0.01)
    registry = make_registry(provider)

    results = await asyncio.gather(*(registry.invoke(TOOL, ARGS, idempotency_key=f"k{i}") for i in range(3)))

    assert len(provider.calls) == 3
    assert all(r["metadata"]["cached"] is False for r in results)
    assert len(registry.store) == 3
