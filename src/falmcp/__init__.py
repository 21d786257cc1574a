"""falmcp - Fal AI model catalog exposed as MCP tools.

Every catalog model becomes a callable tool. Invocations are deduplicated by
client-supplied idempotency keys, transient upstream failures are retried
with bounded exponential backoff, and every failure is collapsed into one
flat error taxonomy.

Quick Start:
    >>> from falmcp.ext.mcp import create_server
    >>> server = create_server(transport="stdio")
    >>> server.run()

Direct use of the core:
    >>> from falmcp import IdempotencyStore, RetryingInvoker, normalize
    >>> store = IdempotencyStore(ttl=60)
    >>> normalize({"status": 503}).code
    'service_error'

Requires: pip install falmcp[mcp] for the MCP transport,
         pip install falmcp[http] for HTTP endpoints.
"""

__version__ = "1.0.0"

# Foundation first: errors/normalize import runtime.observability directly
from .foundation import (
    ErrorNormalizer,
    ErrorType,
    FalmcpSettings,
    NormalizedError,
    NormalizedException,
    ToolRegistry,
    clear_settings_cache,
    get_settings,
    normalize,
    tool_error_response,
)
from .catalog import CatalogError, CatalogModel, load_catalog, tool_name
from .io import FalClient, IdempotencyStore, ProviderError, SchemaResolver, fallback_schema
from .runtime.observability import configure_logging, get_logger
from .runtime.retry import ExponentialBackoff, RetryingInvoker, RetryPolicy

__all__ = [
    "__version__",
    # Errors
    "ErrorType", "NormalizedError", "NormalizedException", "ErrorNormalizer", "normalize", "tool_error_response",
    # Config
    "FalmcpSettings", "get_settings", "clear_settings_cache",
    # Core
    "ToolRegistry", "IdempotencyStore", "SchemaResolver", "fallback_schema", "RetryingInvoker", "RetryPolicy",
    "ExponentialBackoff",
    # Catalog and provider
    "CatalogModel", "CatalogError", "load_catalog", "tool_name", "FalClient", "ProviderError",
    # Logging
    "configure_logging", "get_logger",
]
