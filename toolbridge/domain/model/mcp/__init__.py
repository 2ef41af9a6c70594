"""
MCP (Model Context Protocol) Domain Models.

Key entities:
- MCPServerConfig / MCPServersConfig: provider descriptors
- MCPTool / MCPToolset: discovered tools and their per-provider grouping
- ToolHandler: invocation capability attached to a tool
"""

from toolbridge.domain.model.mcp.descriptor import (
    MCPServerConfig,
    MCPServersConfig,
    TransportType,
    infer_network_transport,
)
from toolbridge.domain.model.mcp.tool import (
    DEFAULT_TOOLSET,
    CallableToolHandler,
    MCPTool,
    MCPToolset,
    ToolHandler,
    group_tools,
)

__all__ = [
    # Descriptor
    "MCPServerConfig",
    "MCPServersConfig",
    "TransportType",
    "infer_network_transport",
    # Tool
    "DEFAULT_TOOLSET",
    "CallableToolHandler",
    "MCPTool",
    "MCPToolset",
    "ToolHandler",
    "group_tools",
]
