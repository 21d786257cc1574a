"""MCP and HTTP server adapters.

Requires: pip install falmcp[mcp] for MCP, falmcp[http] for HTTP endpoints.
"""

from .server import HTTPToolServer, MCPServer, ToolServer, Transport, build_registry, create_server, serve

__all__ = ["ToolServer", "MCPServer", "HTTPToolServer", "Transport", "build_registry", "create_server", "serve"]
