"""
MCP Tool Domain Models.

Defines the discovered tool descriptor, its invocation capability and the
per-provider grouping used for presentation.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

DEFAULT_TOOLSET = "default"


@runtime_checkable
class ToolHandler(Protocol):
    """Invocation capability attached to a discovered tool.

    Implementations own the transport details; callers only ever see
    ``invoke``.
    """

    async def invoke(self, arguments: dict[str, Any]) -> Any: ...


class CallableToolHandler:
    """Tool handler backed by a plain sync or async callable."""

    def __init__(self, func: Callable[[dict[str, Any]], Any | Awaitable[Any]]) -> None:
        self._func = func

    async def invoke(self, arguments: dict[str, Any]) -> Any:
        result = self._func(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"CallableToolHandler({getattr(self._func, '__name__', self._func)!r})"


@dataclass(frozen=True)
class MCPTool:
    """
    A tool discovered from an MCP provider.

    ``input_schema`` is populated at discovery time and always ``None`` once
    the tool has passed through the schema sanitizer: tools handed to the
    agent runtime are schema-less and rely on the provider for validation.
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None
    handler: ToolHandler | None = field(default=None, compare=False)
    server: str | None = None

    @property
    def has_schema(self) -> bool:
        return self.input_schema is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the runtime-facing tool shape."""
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "handler": self.handler,
            "server": self.server,
        }
        if self.input_schema is not None:
            result["inputSchema"] = self.input_schema
        return result


@dataclass
class MCPToolset:
    """Tools belonging to one provider, in discovery order."""

    server: str
    tools: list[MCPTool] = field(default_factory=list)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]


def group_tools(tools: list[MCPTool]) -> list[MCPToolset]:
    """Partition tools by origin provider, groups ordered by first appearance."""
    toolsets: dict[str, MCPToolset] = {}
    for tool in tools:
        server = tool.server or DEFAULT_TOOLSET
        if server not in toolsets:
            toolsets[server] = MCPToolset(server=server)
        toolsets[server].tools.append(tool)
    return list(toolsets.values())
