"""Tool registry for catalog-backed tools."""

from .registry import Runner, ToolRegistry

__all__ = ["Runner", "ToolRegistry"]
