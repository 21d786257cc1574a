"""Tests for structured logging: rendering, levels, context, and redaction."""

from __future__ import annotations

import io
import logging

import orjson
import pytest

from falmcp.runtime.observability import (
    REDACTED,
    BoundLogger,
    ConsoleRenderer,
    JsonRenderer,
    configure_logging,
    log_context,
    redact,
)


def test_redact() -> None:
    context = {"api_key": "k", "Authorization": "Key k", "fal_token": "t", "model": "fal-ai/flux/dev"}
    assert redact(context) == {
        "api_key": REDACTED, "Authorization": REDACTED, "fal_token": REDACTED, "model": "fal-ai/flux/dev",
    }


def test_json_renderer() -> None:
    out = io.StringIO()
    log = BoundLogger(context={"logger": "falmcp.test"}, _renderer=JsonRenderer(output=out), _level=logging.DEBUG)

    log.bind(request_id="req-1").info("tool invoked", tool="fal_flux_dev", api_key="secret")

    record = orjson.loads(out.getvalue())
    assert record["level"] == "info"
    assert record["event"] == "tool invoked"
    assert record["logger"] == "falmcp.test"
    assert record["request_id"] == "req-1"
    assert record["api_key"] == REDACTED
    assert "timestamp" in record


def test_console_renderer() -> None:
    out = io.StringIO()
    log = BoundLogger(_renderer=ConsoleRenderer(output=out, colors=False, show_timestamp=False), _level=logging.DEBUG)

    log.warning("retrying", attempt=1, label="fal-ai/flux/dev")

    assert out.getvalue().strip() == '[warning] retrying attempt=1 label="fal-ai/flux/dev"'


def test_level_filtering(capture) -> None:
    log = BoundLogger(_renderer=capture, _level=logging.WARNING)
    log.debug("hidden")
    log.info("hidden")
    log.warning("shown")
    log.error("shown")
    assert capture.levels() == ["warning", "error"]


def test_log_context_scope(capture) -> None:
    log = BoundLogger(_renderer=capture, _level=logging.DEBUG)
    with log_context(request_id="req-1"):
        log.info("inside")
    log.info("outside")
    assert capture.entries[0].context == {"request_id": "req-1"}
    assert capture.entries[1].context == {}


def test_bind_unbind() -> None:
    log = BoundLogger(context={"a": 1}).bind(b=2)
    assert log.context == {"a": 1, "b": 2}
    assert log.unbind("a").context == {"b": 2}


def test_configure_rejects_unknown_format() -> None:
    with pytest.raises(ValueError, match="Unknown format"):
        configure_logging("xml")
