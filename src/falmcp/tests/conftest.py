"""Shared fixtures: captured logging, a controllable clock, and a fake provider."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from falmcp.catalog import CatalogModel, load_catalog, packaged_catalog_path
from falmcp.foundation.errors import ErrorNormalizer
from falmcp.foundation.registry import ToolRegistry
from falmcp.io.cache import IdempotencyStore
from falmcp.io.schema import SchemaResolver
from falmcp.runtime.observability import BoundLogger, LogEntry
from falmcp.runtime.retry import RetryingInvoker, RetryPolicy


@dataclass
class CaptureRenderer:
    """Collects rendered entries instead of writing them."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def levels(self) -> list[str]:
        return [e.level for e in self.entries]

    def events(self, level: str | None = None) -> list[str]:
        return [e.event for e in self.entries if level is None or e.level == level]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeProvider:
    """Upstream double. Each call pops the next scripted outcome; exceptions are raised.

    With no script left, returns a result echoing the call.
    """

    def __init__(self, *outcomes: Any, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def run(self, model_id: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((model_id, dict(arguments)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return {"images": [{"url": f"https://cdn.example/{len(self.calls)}.png"}], "model": model_id}


class FakeSchemaFetcher:
    def __init__(self, schema: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.schema = schema or {"type": "object", "properties": {"prompt": {"type": "string"}}, "required": ["prompt"]}
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, model_id: str) -> dict[str, Any]:
        self.calls.append(model_id)
        if self.error is not None:
            raise self.error
        return self.schema


@pytest.fixture
def capture() -> CaptureRenderer:
    return CaptureRenderer()


@pytest.fixture
def log(capture: CaptureRenderer) -> BoundLogger:
    return BoundLogger(context={"logger": "test"}, _renderer=capture, _level=logging.DEBUG)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def scripted() -> type[FakeProvider]:
    """The FakeProvider class, for tests that script their own outcomes."""
    return FakeProvider


@pytest.fixture
def fetcher() -> FakeSchemaFetcher:
    return FakeSchemaFetcher()


@pytest.fixture(scope="session")
def models() -> list[CatalogModel]:
    return load_catalog(packaged_catalog_path())


@pytest.fixture
def make_registry(
    models: list[CatalogModel], clock: FakeClock, sleep: RecordingSleep, fetcher: FakeSchemaFetcher, log: BoundLogger,
) -> Callable[..., ToolRegistry]:
    """Factory building a registry around a given provider, with fake clock and sleep."""

    def build(provider: FakeProvider, *, policy: RetryPolicy | None = None, ttl: float = 86400.0) -> ToolRegistry:
        return ToolRegistry(
            models,
            provider.run,
            store=IdempotencyStore(ttl, clock=clock, log=log),
            schemas=SchemaResolver(fetcher, clock=clock, log=log),
            invoker=RetryingInvoker(policy or RetryPolicy(), sleep=sleep, log=log),
            normalizer=ErrorNormalizer(log=log),
            log=log,
        )

    return build


@pytest.fixture
def registry(make_registry: Callable[..., ToolRegistry], provider: FakeProvider) -> ToolRegistry:
    return make_registry(provider)
