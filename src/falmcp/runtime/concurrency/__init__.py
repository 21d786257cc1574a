"""Concurrency primitives for cooperative async execution."""

from .inflight import InFlight, checkpoint

__all__ = ["InFlight", "checkpoint"]
