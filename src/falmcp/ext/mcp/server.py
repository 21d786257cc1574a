"""Server adapters exposing the tool registry.

1. **MCP** - Model Context Protocol over stdio or SSE (desktop clients, IDEs)
2. **HTTP/REST** - Plain JSON endpoints for web backends

Both share ToolServer, which produces the tool-call envelopes:
    success: {"content": [{"type": "text", "text": <result JSON>}]}
    failure: {"content": [{"type": "text", "text": <NormalizedError JSON>}], "isError": true}

Example - MCP over stdio:
    >>> from falmcp.ext.mcp import create_server
    >>> create_server(transport="stdio").run()

Example - HTTP endpoints:
    >>> app = create_server(transport="http").app

Requires: pip install falmcp[mcp] (for MCP)
         pip install falmcp[http] (for HTTP endpoints)
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Literal

import orjson

from falmcp import __version__
from falmcp.catalog import list_resources, load_catalog, read_resource, resource_stats
from falmcp.foundation.config import FalmcpSettings, get_settings
from falmcp.foundation.errors import ErrorNormalizer, NormalizedError, NormalizedException, tool_error_response
from falmcp.foundation.registry import ToolRegistry
from falmcp.io.cache import IdempotencyStore
from falmcp.io.provider import FalClient
from falmcp.io.schema import SchemaResolver
from falmcp.runtime.observability import configure_logging, get_logger
from falmcp.runtime.retry import RetryingInvoker

if TYPE_CHECKING:
    from starlette.applications import Starlette
    from starlette.requests import Request
    from starlette.responses import JSONResponse

Transport = Literal["stdio", "sse", "http"]
JsonDict = dict[str, Any]
Closer = Callable[[], Awaitable[None]]

_log = get_logger("falmcp.server")


# ═══════════════════════════════════════════════════════════════════════════════
# Transport-Neutral Server
# ═══════════════════════════════════════════════════════════════════════════════


class ToolServer(ABC):
    """Abstract base for server adapters.

    Subclasses implement a transport; listing, invocation envelopes,
    resources, and lifecycle live here.
    """

    __slots__ = ("_name", "_registry", "_closers", "_normalizer")

    def __init__(self, name: str, registry: ToolRegistry, *, closers: tuple[Closer, ...] = ()) -> None:
        self._name = name
        self._registry = registry
        self._closers = closers
        self._normalizer = ErrorNormalizer(log=_log)

    @property
    def name(self) -> str:
        return self._name

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @abstractmethod
    def run(self, **kwargs: Any) -> None:
        """Start the server (blocking)."""
        ...

    def list_tools(self) -> list[JsonDict]:
        return self._registry.list_tools()

    async def call_tool(self, name: str, arguments: JsonDict | None = None, meta: Mapping[str, Any] | None = None) -> JsonDict:
        """Invoke a tool and wrap the outcome in a tool-call envelope. Never raises."""
        meta = meta or {}
        result = await self._registry.invoke(
            name, arguments, idempotency_key=meta.get("idempotencyKey"), request_id=meta.get("requestId"),
        )
        if isinstance(result, NormalizedError):
            return tool_error_response(result)
        return {"content": [{"type": "text", "text": _dump(result)}]}

    def list_resources(self) -> list[JsonDict]:
        return list_resources(self._registry.models)

    async def read_resource(self, uri: str) -> str:
        """JSON document for a resource URI.

        Raises:
            NormalizedException: invalid_request/not_found for unknown URIs.
        """
        return await read_resource(uri, self._registry.models, self._registry.schemas)

    def server_info(self) -> JsonDict:
        stats = resource_stats(self._registry.models)
        return {
            "name": self._name,
            "version": __version__,
            "metadata": {
                "totalModels": stats["total_models"],
                "categories": stats["categories"],
                "resources": stats["resources"],
            },
        }

    async def start(self) -> None:
        """Begin background maintenance (idempotency sweep). Needs a running loop."""
        self._registry.store.start()
        _log.info("server started", name=self._name, tools=len(self._registry))

    async def aclose(self) -> None:
        """Stop background work, drop cached state, and close owned clients."""
        await self._registry.store.shutdown()
        self._registry.schemas.clear()
        for close in self._closers:
            await close()
        _log.info("server stopped", name=self._name)

    @contextlib.asynccontextmanager
    async def _lifespan(self, app: Any) -> AsyncIterator[None]:
        """ASGI lifespan: start on startup, aclose on shutdown."""
        await self.start()
        try:
            yield
        finally:
            await self.aclose()


# ═══════════════════════════════════════════════════════════════════════════════
# MCP Adapter
# ═══════════════════════════════════════════════════════════════════════════════


class MCPServer(ToolServer):
    """MCP protocol server built on the official SDK's low-level server.

    Tool calls read `_meta.idempotencyKey` and `_meta.requestId` from the request.

    Example:
        >>> server = MCPServer("fal-ai-mcp", registry)
        >>> server.run(transport="stdio")
    """

    __slots__ = ("_mcp",)

    def __init__(self, name: str, registry: ToolRegistry, *, closers: tuple[Closer, ...] = ()) -> None:
        super().__init__(name, registry, closers=closers)
        self._mcp = self._create_server()

    def _create_server(self):
        try:
            import mcp.types as types
            from mcp.server.lowlevel import Server
            from mcp.server.lowlevel.helper_types import ReadResourceContents
        except ImportError as e:
            raise ImportError(
                "MCP integration requires the mcp SDK. "
                "Install with: pip install falmcp[mcp]"
            ) from e

        server = Server(self._name, version=__version__)

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return [types.Tool(name=t["name"], description=t["description"], inputSchema=t["inputSchema"])
                    for t in self.list_tools()]

        async def call_tool(request: types.CallToolRequest) -> types.ServerResult:
            params = request.params
            meta = params.meta.model_dump(exclude_none=True) if params.meta else {}
            envelope = await self.call_tool(params.name, params.arguments or {}, meta)
            return types.ServerResult(types.CallToolResult(
                content=[types.TextContent(type="text", text=c["text"]) for c in envelope["content"]],
                isError=envelope.get("isError", False),
            ))

        # Registered directly so the handler sees the full request, including _meta
        server.request_handlers[types.CallToolRequest] = call_tool

        @server.list_resources()
        async def list_resources() -> list[types.Resource]:
            return [types.Resource(uri=r["uri"], name=r["name"], description=r["description"], mimeType=r["mimeType"])
                    for r in self.list_resources()]

        @server.read_resource()
        async def read_resource(uri) -> list[ReadResourceContents]:
            text = await self.read_resource(str(uri).rstrip("/"))
            return [ReadResourceContents(content=text, mime_type="application/json")]

        return server

    def run(self, transport: Transport = "stdio", *, host: str = "127.0.0.1", port: int = 8080) -> None:
        """Start MCP server.

        Args:
            transport: "stdio" (desktop clients) or "sse" (HTTP)
            host: Host for SSE
            port: Port for SSE
        """
        import anyio

        match transport:
            case "stdio": anyio.run(self._run_stdio)
            case "sse": self._run_sse(host, port)
            case _: raise ValueError(f"Unsupported MCP transport: {transport}. Use 'stdio' or 'sse'")

    async def _run_stdio(self) -> None:
        from mcp.server.stdio import stdio_server

        await self.start()
        try:
            async with stdio_server() as (read, write):
                await self._mcp.run(read, write, self._mcp.create_initialization_options())
        finally:
            await self.aclose()

    def _run_sse(self, host: str, port: int) -> None:
        try:
            import uvicorn
            from mcp.server.sse import SseServerTransport
            from starlette.applications import Starlette
            from starlette.responses import Response
            from starlette.routing import Mount, Route
        except ImportError as e:
            raise ImportError(
                "SSE transport requires starlette and uvicorn. "
                "Install with: pip install falmcp[mcp,http]"
            ) from e

        sse = SseServerTransport("/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(request.scope, request.receive, request._send) as (read, write):
                await self._mcp.run(read, write, self._mcp.create_initialization_options())
            return Response()

        app = Starlette(
            routes=[Route("/sse", handle_sse, methods=["GET"]), Mount("/messages/", app=sse.handle_post_message)],
            lifespan=self._lifespan,
        )
        uvicorn.run(app, host=host, port=port)

    @property
    def lowlevel(self):
        """Access the underlying SDK server."""
        return self._mcp


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP REST Adapter
# ═══════════════════════════════════════════════════════════════════════════════


class HTTPToolServer(ToolServer):
    """HTTP/REST server for web backend integration.

    - GET  /tools                → List tools
    - GET  /tools/{name}/schema  → Tool descriptor with resolved schema
    - POST /tools/{name}         → Invoke tool (JSON body = arguments;
                                   headers Idempotency-Key, Request-Id)
    - GET  /resources            → List resources, or read one with ?uri=

    Failures respond with the error's HTTP-equivalent status and
    body {"error": <NormalizedError payload>}.

    Example:
        >>> server = HTTPToolServer("fal-ai-mcp", registry)
        >>> server.run(host="0.0.0.0", port=8000)
    """

    __slots__ = ("_app",)

    def __init__(self, name: str, registry: ToolRegistry, *, closers: tuple[Closer, ...] = ()) -> None:
        super().__init__(name, registry, closers=closers)
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        try:
            from starlette.applications import Starlette
            from starlette.responses import JSONResponse, Response
            from starlette.routing import Route
        except ImportError as e:
            raise ImportError(
                "HTTP server requires starlette. "
                "Install with: pip install falmcp[http]"
            ) from e

        def error_response(error: NormalizedError) -> JSONResponse:
            return JSONResponse({"error": error.to_payload()}, status_code=error.http_status)

        async def list_tools(request: Request) -> JSONResponse:
            return JSONResponse({"server": self._name, "tools": self.list_tools()})

        async def describe_tool(request: Request) -> JSONResponse:
            try:
                return JSONResponse(await self._registry.describe(request.path_params["name"]))
            except NormalizedException as e:
                return error_response(self._normalizer.normalize(e))

        async def invoke_tool(request: Request) -> JSONResponse:
            request_id = request.headers.get("request-id")
            try:
                body = await request.json() if await request.body() else {}
            except ValueError:
                return error_response(self._normalizer.normalize(
                    NormalizedException.create("invalid_request", "invalid_json", "Request body is not valid JSON"),
                    request_id,
                ))
            if not isinstance(body, dict):
                return error_response(self._normalizer.normalize(
                    NormalizedException.create("invalid_request", "invalid_arguments", "Arguments must be a JSON object"),
                    request_id,
                ))
            result = await self._registry.invoke(
                request.path_params["name"], body,
                idempotency_key=request.headers.get("idempotency-key"), request_id=request_id,
            )
            if isinstance(result, NormalizedError):
                return error_response(result)
            return JSONResponse(orjson.loads(_dump(result)))

        async def resources(request: Request) -> Response:
            if (uri := request.query_params.get("uri")) is None:
                return JSONResponse({"resources": self.list_resources()})
            try:
                return Response(await self.read_resource(uri), media_type="application/json")
            except NormalizedException as e:
                return error_response(self._normalizer.normalize(e))

        async def info(request: Request) -> JSONResponse:
            return JSONResponse(self.server_info())

        routes = [
            Route("/", info, methods=["GET"]),
            Route("/tools", list_tools, methods=["GET"]),
            Route("/tools/{name}", invoke_tool, methods=["POST"]),
            Route("/tools/{name}/schema", describe_tool, methods=["GET"]),
            Route("/resources", resources, methods=["GET"]),
        ]
        return Starlette(routes=routes, lifespan=self._lifespan)

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Start HTTP server."""
        try:
            import uvicorn
        except ImportError as e:
            raise ImportError(
                "HTTP server requires uvicorn. "
                "Install with: pip install falmcp[http]"
            ) from e

        uvicorn.run(self._app, host=host, port=port)

    @property
    def app(self) -> Starlette:
        """Access ASGI app for embedding in larger applications."""
        return self._app


# ═══════════════════════════════════════════════════════════════════════════════
# Factory Functions
# ═══════════════════════════════════════════════════════════════════════════════


def build_registry(settings: FalmcpSettings, client: FalClient) -> ToolRegistry:
    """Wire catalog, caches, and retry around a provider client."""
    return ToolRegistry(
        load_catalog(settings.catalog_path),
        client.run,
        store=IdempotencyStore(settings.cache.idempotency_ttl, sweep_interval=settings.cache.sweep_interval),
        schemas=SchemaResolver(client.fetch_input_schema, ttl=settings.cache.schema_ttl),
        invoker=RetryingInvoker(settings.retry.policy()),
    )


def create_server(
    settings: FalmcpSettings | None = None,
    *,
    transport: Transport = "stdio",
    client: FalClient | None = None,
) -> ToolServer:
    """Create a configured server without starting it.

    Args:
        settings: Configuration (default: get_settings())
        transport: "stdio"/"sse" build an MCPServer, "http" an HTTPToolServer
        client: Provider client (default: built from settings; closed on aclose)
    """
    settings = settings or get_settings()
    configure_logging(settings.logging.format, settings.logging.level)
    provider = settings.provider
    if client is None:
        if not provider.has_api_key:
            _log.warning("no provider API key configured; set FAL_KEY")
        client = FalClient(
            provider.api_key.get_secret_value() if provider.api_key else None,
            run_url=provider.run_url, timeout=provider.timeout,
        )
    registry = build_registry(settings, client)
    server_cls = HTTPToolServer if transport == "http" else MCPServer
    return server_cls(settings.server_name, registry, closers=(client.aclose,))


def serve(
    settings: FalmcpSettings | None = None,
    *,
    transport: Transport = "stdio",
    host: str = "127.0.0.1",
    port: int = 8080,
) -> None:
    """Create and run a server for the given transport (blocking)."""
    server = create_server(settings, transport=transport)
    if isinstance(server, MCPServer):
        server.run(transport, host=host, port=port)
    else:
        server.run(host=host, port=port)


def _dump(document: Any) -> str:
    return orjson.dumps(document, option=orjson.OPT_INDENT_2, default=str).decode()
