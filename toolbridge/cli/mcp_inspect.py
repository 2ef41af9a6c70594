#!/usr/bin/env python3
"""
MCP inspection CLI tool.

Connects to the configured MCP servers, lists the tools they expose and
disconnects again.

Usage:
    python -m toolbridge.cli.mcp_inspect
    python -m toolbridge.cli.mcp_inspect --config ./config/mcp.json
    python -m toolbridge.cli.mcp_inspect --toolsets
    python -m toolbridge.cli.mcp_inspect --json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from toolbridge.configuration.config import get_settings
from toolbridge.configuration.logging_config import configure_logging
from toolbridge.domain.model.mcp.tool import MCPTool, MCPToolset
from toolbridge.infrastructure.mcp.errors import MCPError, format_error
from toolbridge.infrastructure.mcp.manager import MCPConnectionOptions, MCPManager

logger = logging.getLogger(__name__)


def _tool_summary(tool: MCPTool) -> dict[str, str | None]:
    return {"name": tool.name, "description": tool.description, "server": tool.server}


def render_tools(tools: list[MCPTool], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([_tool_summary(tool) for tool in tools], indent=2, ensure_ascii=False)
    if not tools:
        return "No MCP tools available"
    lines = [f"Found {len(tools)} MCP tools:"]
    for tool in tools:
        lines.append(f"  - {tool.name} [{tool.server or '-'}] {tool.description}".rstrip())
    return "\n".join(lines)


def render_toolsets(toolsets: list[MCPToolset], as_json: bool = False) -> str:
    if as_json:
        return json.dumps(
            {toolset.server: toolset.tool_names for toolset in toolsets},
            indent=2,
            ensure_ascii=False,
        )
    if not toolsets:
        return "No MCP toolsets available"
    lines = []
    for toolset in toolsets:
        lines.append(f"{toolset.server} ({len(toolset.tools)} tools)")
        lines.extend(f"  - {name}" for name in toolset.tool_names)
    return "\n".join(lines)


async def inspect(manager: MCPManager, toolsets: bool = False, as_json: bool = False) -> str:
    """Initialize ``manager``, render its tools and always disconnect."""
    try:
        await manager.initialize_servers()
        if toolsets:
            return render_toolsets(await manager.get_toolsets(), as_json)
        return render_tools(await manager.get_available_tools(), as_json)
    finally:
        await manager.disconnect()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="List tools exposed by configured MCP servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config ./config/mcp.json
  %(prog)s --toolsets --json
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the MCP descriptor file (default: MCP_CONFIG_PATH)",
    )
    parser.add_argument(
        "--toolsets",
        action="store_true",
        help="Group tools by server",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of text",
    )

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    manager = MCPManager(
        config_path=args.config or settings.mcp_config_path,
        connection_options=MCPConnectionOptions.from_settings(settings),
    )

    try:
        output = asyncio.run(inspect(manager, toolsets=args.toolsets, as_json=args.json))
    except MCPError as e:
        logger.error(format_error(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
