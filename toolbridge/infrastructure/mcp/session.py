"""
Aggregate MCP session over all enabled providers.

The session owns one MCPProviderClient per provider, connects them lazily
on the first discovery or call and turns advertised tools into MCPTool
descriptors whose handlers call back through the owning client.
"""

import logging
from collections.abc import Callable
from typing import Any

from toolbridge.domain.model.mcp.tool import MCPTool
from toolbridge.infrastructure.mcp.client import DEFAULT_TIMEOUT_SECONDS, MCPProviderClient
from toolbridge.infrastructure.mcp.errors import MCPError, MCPErrorClassifier, format_error

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, dict[str, Any], float], Any]


class SessionToolHandler:
    """Tool handler that invokes a tool through its provider client."""

    def __init__(self, client: Any, tool_name: str) -> None:
        self.client = client
        self.tool_name = tool_name

    async def invoke(self, arguments: dict[str, Any]) -> Any:
        return await self.client.call_tool(self.tool_name, arguments)

    def __repr__(self) -> str:
        return f"SessionToolHandler(server={getattr(self.client, 'name', '?')!r}, tool={self.tool_name!r})"


class MCPProviderSession:
    """
    Live aggregate of connections to a set of MCP providers.

    Tool discovery walks providers in configuration order; when two
    providers export the same tool name the one discovered last wins. A
    provider that fails discovery does not hide its siblings' tools.
    """

    def __init__(
        self,
        servers: dict[str, dict[str, Any]],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """
        Build the session. No connection is attempted here.

        Args:
            servers: Provider name -> connection parameters
            timeout: Per-request bound handed to each client
            client_factory: Override for client construction (tests, custom transports)
        """
        factory = client_factory or MCPProviderClient
        self.timeout = timeout
        self._clients: dict[str, Any] = {
            name: factory(name, params, timeout) for name, params in servers.items()
        }
        # Tool names each provider advertised in its last successful discovery
        self._advertised: dict[str, set[str]] = {}
        self._discovery_failures: dict[str, MCPError] = {}

    @property
    def server_names(self) -> list[str]:
        return list(self._clients.keys())

    def get_client(self, server_name: str) -> Any | None:
        return self._clients.get(server_name)

    def has_server(self, server_name: str) -> bool:
        return server_name in self._clients

    async def get_tools(self) -> list[MCPTool]:
        """
        Discover tools from every provider, connecting on demand.

        A provider whose discovery fails is skipped and its classified error
        is kept in ``discovery_failures``; the other providers' tools are
        still returned.

        Raises:
            MCPError: the first failure, when every provider failed
        """
        tools: dict[str, MCPTool] = {}
        failures: dict[str, MCPError] = {}
        for server_name, client in self._clients.items():
            try:
                advertised = await client.list_tools()
            except Exception as e:
                error = MCPErrorClassifier.wrap(
                    f"Failed to list tools from {server_name}", e, server_name=server_name
                )
                logger.error(format_error(error))
                failures[server_name] = error
                continue

            self._advertised[server_name] = set()
            for raw_tool in advertised:
                tool = self._to_tool(server_name, client, raw_tool)
                previous = tools.pop(tool.name, None)
                if previous is not None:
                    logger.warning(
                        f"Tool {tool.name} from {server_name} overrides the one from "
                        f"{previous.server}"
                    )
                tools[tool.name] = tool
                self._advertised[server_name].add(tool.name)

            logger.debug(f"Discovered {len(advertised)} tools from MCP server {server_name}")

        self._discovery_failures = failures
        if failures and len(failures) == len(self._clients):
            raise next(iter(failures.values()))

        return list(tools.values())

    @property
    def discovery_failures(self) -> dict[str, MCPError]:
        """Providers whose last discovery failed, with their classified errors."""
        return dict(self._discovery_failures)

    def failure_for_tool(self, tool_name: str) -> MCPError | None:
        """
        Error to report for a tool missing from the last discovery.

        Prefers the failed provider that advertised ``tool_name`` before;
        otherwise any failed provider could have supplied it.
        """
        if not self._discovery_failures:
            return None
        for server_name, error in self._discovery_failures.items():
            if tool_name in self._advertised.get(server_name, ()):
                return error
        return next(iter(self._discovery_failures.values()))

    @staticmethod
    def _to_tool(server_name: str, client: Any, raw_tool: Any) -> MCPTool:
        if isinstance(raw_tool, dict):
            name = raw_tool.get("name", "")
            description = raw_tool.get("description") or ""
            input_schema = raw_tool.get("input_schema", raw_tool.get("inputSchema"))
        else:
            name = getattr(raw_tool, "name", "")
            description = getattr(raw_tool, "description", None) or ""
            # mcp 2.x names the field input_schema, 1.x inputSchema
            input_schema = getattr(raw_tool, "input_schema", None)
            if input_schema is None:
                input_schema = getattr(raw_tool, "inputSchema", None)

        return MCPTool(
            name=name,
            description=description,
            input_schema=input_schema,
            handler=SessionToolHandler(client, name),
            server=server_name,
        )

    async def disconnect(self, server_name: str | None = None) -> None:
        """
        Close provider connections for good.

        Closed clients do not reconnect on their own; tool handlers created
        earlier fall back to a connection scoped to each call.

        Args:
            server_name: Close only this provider; all when omitted

        Raises:
            MCPError: the first close failure, after every client was attempted
        """
        await self._close_clients(server_name, reopenable=False)

    async def reset(self, server_name: str | None = None) -> None:
        """Drop provider connections and let the next request reconnect."""
        await self._close_clients(server_name, reopenable=True)

    async def _close_clients(self, server_name: str | None, reopenable: bool) -> None:
        targets = (
            {server_name: self._clients[server_name]}
            if server_name is not None and server_name in self._clients
            else dict(self._clients)
        )

        first_error: BaseException | None = None
        for name, client in targets.items():
            try:
                if reopenable:
                    await client.reset()
                else:
                    await client.close()
            except Exception as e:
                logger.error(f"Error disconnecting MCP server {name}: {e}")
                if first_error is None:
                    first_error = MCPErrorClassifier.classify(e, server_name=name)

        if first_error is not None:
            raise first_error
