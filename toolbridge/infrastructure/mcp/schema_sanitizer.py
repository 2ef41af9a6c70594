"""
Schema Sanitizer for discovered MCP tools.

Input schemas come from heterogeneous external providers and may use
dialect features downstream validators cannot represent. Instead of
translating them, every tool crossing this boundary has its schema
removed: the tool is handed to the agent runtime as an unvalidated
passthrough and the provider remains responsible for argument validation.
"""

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from toolbridge.domain.model.mcp.tool import MCPTool

logger = logging.getLogger(__name__)

_SCHEMA_KEYS = ("inputSchema", "input_schema")


def _has_schema(tool: Any) -> bool:
    if isinstance(tool, MCPTool):
        return tool.input_schema is not None
    if isinstance(tool, Mapping):
        return any(tool.get(key) is not None for key in _SCHEMA_KEYS)
    return getattr(tool, "input_schema", None) is not None


def sanitize_tool_schema(tool: Any) -> Any:
    """Return a shallow copy of ``tool`` without its input schema.

    Accepts MCPTool instances and plain mappings; anything else is
    returned unchanged.
    """
    if isinstance(tool, MCPTool):
        return dataclasses.replace(tool, input_schema=None)
    if isinstance(tool, Mapping):
        return {key: value for key, value in tool.items() if key not in _SCHEMA_KEYS}
    return tool


def sanitize_tools(tools: Iterable[Any]) -> list[Any]:
    """Strip input schemas from every tool without mutating the input."""
    sanitized: list[Any] = []
    removed_count = 0

    for tool in tools:
        try:
            if _has_schema(tool):
                removed_count += 1
            sanitized.append(sanitize_tool_schema(tool))
        except Exception as e:
            # Unexpected tool shapes are passed through untouched
            logger.debug(f"Could not sanitize tool {tool!r}: {e}")
            sanitized.append(tool)

    logger.info(f"Removed input schema from {removed_count} of {len(sanitized)} MCP tool(s)")
    return sanitized
