"""dit MCP server - main entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# MCP imports are optional - only needed when running the server
try:
    from mcp.server import Server  # pragma: no cover
    from mcp.server.stdio import stdio_server  # pragma: no cover
    from mcp.types import Tool, TextContent  # pragma: no cover
    HAS_MCP = True  # pragma: no cover
except ImportError:
    HAS_MCP = False
    Server = None  # type: ignore
    Tool = None  # type: ignore
    TextContent = None  # type: ignore

from .config import DitConfig, default_root, load_config
from .engine import DitEngine
from .errors import DitError
from .tools import execute_tool, make_tools

logger = logging.getLogger(__name__)


def create_server(config: DitConfig) -> "Server":
    """Create and configure the MCP server.

    Raises:
        ImportError: If MCP package is not installed
    """
    if not HAS_MCP:
        raise ImportError("MCP package not installed. Install with: pip install mcp")

    server = Server("dit")
    engine = DitEngine(config)
    tool_defs = make_tools(engine)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """Return list of available tools."""
        return [
            Tool(
                name=t["name"],
                description=t["description"],
                inputSchema=t["inputSchema"],
            )
            for t in tool_defs.values()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool invocation."""
        result = await execute_tool(engine, name, arguments or {})
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    return server


async def run_server(config: DitConfig) -> None:
    """Run the MCP server with stdio transport."""
    if not HAS_MCP:
        raise ImportError("MCP package not installed. Install with: pip install mcp")

    server = create_server(config)  # pragma: no cover

    async with stdio_server() as (read_stream, write_stream):  # pragma: no cover
        await server.run(  # pragma: no cover
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def configure_logging(verbosity: int) -> None:
    """Log to stderr; stdout belongs to the stdio transport."""
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="dit MCP server - clock in and out of hierarchical tasks"
    )
    parser.add_argument(
        "--directory",
        "-d",
        type=Path,
        default=None,
        help=f"Data directory (default: ~/{default_root().name})",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to config file (default: auto-detect in data directory)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create the data directory and exit",
    )
    parser.add_argument(
        "--rebuild-index",
        action="store_true",
        help="Rebuild the task index from the task records and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Print detailed information of what is being done",
    )

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    root = (args.directory or default_root()).expanduser().resolve()

    try:
        config = load_config(root, args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.init:
        DitEngine(config)
        print(f"Initialized dit directory: {root}")
        return

    if args.rebuild_index:
        try:
            stats = DitEngine(config).rebuild_index()
        except DitError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Rebuilt index: {stats['tasks_indexed']} of {stats['tasks_found']} tasks")
        return

    if not HAS_MCP:
        print("Error: MCP package not installed.", file=sys.stderr)
        print("Install with: pip install mcp", file=sys.stderr)
        sys.exit(1)

    logger.debug("Using data directory: %s", root)
    asyncio.run(run_server(config))


if __name__ == "__main__":  # pragma: no cover
    main()
