"""Command-line entry point.

    falmcp serve [--transport stdio|sse|http] [--host HOST] [--port PORT]
    falmcp path       absolute path of the entry module, for desktop client config
    falmcp catalog    catalog statistics as JSON
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import orjson


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level parser. No side effects."""
    p = argparse.ArgumentParser(prog="falmcp", description="Fal AI model catalog tool server")
    sub = p.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the tool server (default)")
    p_serve.add_argument("--transport", choices=("stdio", "sse", "http"), default="stdio")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8080)

    sub.add_parser("path", help="Print the entry module path for client configuration")
    sub.add_parser("catalog", help="Print catalog statistics")
    return p


def cmd_serve(args: argparse.Namespace) -> int:
    from falmcp.ext.mcp import serve

    serve(transport=args.transport, host=args.host, port=args.port)
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    print(Path(__file__).resolve().with_name("__main__.py"))
    return 0


def cmd_catalog(args: argparse.Namespace) -> int:
    from falmcp.catalog import CatalogError, category_breakdown, load_catalog, resource_stats
    from falmcp.foundation.config import get_settings
    from falmcp.runtime.observability import configure_logging

    configure_logging("none")
    path = get_settings().catalog_path
    try:
        models = load_catalog(path)
    except CatalogError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    stats = {"path": str(path), **resource_stats(models), "by_category": category_breakdown(models)}
    print(orjson.dumps(stats, option=orjson.OPT_INDENT_2).decode())
    return 0


_COMMANDS = {"serve": cmd_serve, "path": cmd_path, "catalog": cmd_catalog}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.cmd is None:
        args = build_parser().parse_args(["serve"])
    return _COMMANDS[args.cmd](args)


if __name__ == "__main__":
    raise SystemExit(main())
