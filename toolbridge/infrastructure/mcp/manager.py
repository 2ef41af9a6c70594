"""
MCP connection manager.

Builds one aggregate session from validated provider descriptors and exposes
tool discovery, tool invocation, per-provider grouping, disconnect and
reconnect-with-retry to the agent runtime.

State machine:
    UNINITIALIZED --initialize_servers--> INITIALIZED --disconnect--> DISCONNECTED

An initialize call whose descriptor set has no enabled provider does not
create a session: discovery then returns an empty list and
``is_connected()`` stays false.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from toolbridge.domain.model.mcp.descriptor import MCPServersConfig
from toolbridge.domain.model.mcp.tool import MCPTool, MCPToolset, ToolHandler, group_tools
from toolbridge.infrastructure.mcp.config_loader import MCPConfigLoader, validate_config
from toolbridge.infrastructure.mcp.errors import (
    MCPError,
    MCPErrorClassifier,
    MCPErrorType,
    create_error,
    format_error,
)
from toolbridge.infrastructure.mcp.retry import reconnect_backoff, with_retry, with_timeout
from toolbridge.infrastructure.mcp.schema_sanitizer import sanitize_tools
from toolbridge.infrastructure.mcp.session import MCPProviderSession

if TYPE_CHECKING:
    from toolbridge.configuration.config import Settings

logger = logging.getLogger(__name__)

SessionFactory = Callable[[dict[str, dict[str, Any]], float], Any]


class ManagerState(str, Enum):
    """Lifecycle states of an MCPManager."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class MCPConnectionOptions:
    """Connection tuning for an MCPManager (durations in seconds)."""

    reconnect_attempts: int = 3
    reconnect_delay: float = 5.0
    reconnect_max_delay: float = 60.0
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MCPConnectionOptions":
        return cls(
            reconnect_attempts=settings.mcp_reconnect_attempts,
            reconnect_delay=settings.mcp_reconnect_delay,
            reconnect_max_delay=settings.mcp_reconnect_max_delay,
            timeout=settings.mcp_timeout,
        )


class MCPManager:
    """
    Connection manager for a set of MCP providers.

    One instance owns at most one live session. Lifecycle calls
    (initialize/disconnect/reconnect) are serialized per instance;
    discovery and tool calls may run concurrently once initialized.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        connection_options: MCPConnectionOptions | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """
        Initialize the manager. No descriptor is read and nothing connects here.

        Args:
            config_path: Descriptor document used when initialize_servers()
                is called without a configuration
            connection_options: Retry/timeout tuning
            session_factory: Override for aggregate session construction
        """
        self._config_loader = MCPConfigLoader(config_path)
        self._connection_options = connection_options or MCPConnectionOptions()
        self._session_factory: SessionFactory = session_factory or (
            lambda servers, timeout: MCPProviderSession(servers, timeout=timeout)
        )

        self._session: Any | None = None
        self._servers: dict[str, dict[str, Any]] = {}
        self._state = ManagerState.UNINITIALIZED
        self._empty_configuration = False

        self._reconnect_tasks: dict[str, asyncio.Task[bool]] = {}
        self._lifecycle_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def connection_options(self) -> MCPConnectionOptions:
        return self._connection_options

    @property
    def server_names(self) -> list[str]:
        """Providers that were actually constructed (disabled ones excluded)."""
        return list(self._servers.keys())

    @property
    def config_path(self) -> Path:
        return self._config_loader.get_config_path()

    @property
    def pending_reconnects(self) -> int:
        return sum(1 for task in self._reconnect_tasks.values() if not task.done())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize_servers(
        self, config: MCPServersConfig | dict[str, Any] | None = None
    ) -> None:
        """
        Build the aggregate session from descriptors.

        Args:
            config: Descriptor document (validated model or raw mapping);
                loaded from ``config_path`` when omitted

        Raises:
            MCPError: configuration error prefixed "Failed to initialize MCP servers"
        """
        async with self._lifecycle_lock:
            try:
                mcp_config = (
                    validate_config(config)
                    if config is not None
                    else await self._config_loader.load_config()
                )

                if self._session is not None:
                    logger.info("Replacing existing MCP session")
                    await self._release_session()

                servers: dict[str, dict[str, Any]] = {}
                for server_name, server_config in mcp_config.servers.items():
                    if not server_config.enabled:
                        logger.info(f"MCP server {server_name} is disabled, skipping")
                        continue
                    servers[server_name] = server_config.to_connection_params()

                if not servers:
                    logger.warning("No enabled MCP servers configured")
                    self._empty_configuration = True
                    return

                session = self._session_factory(servers, self._connection_options.timeout)
            except Exception as e:
                logger.error(f"Failed to initialize MCP servers: {e}")
                raise create_error(
                    "Failed to initialize MCP servers",
                    MCPErrorType.CONFIGURATION,
                    cause=e,
                    server_name=getattr(e, "server_name", None),
                ) from e

            self._session = session
            self._servers = servers
            self._empty_configuration = False
            self._state = ManagerState.INITIALIZED
            logger.info(f"MCP servers initialized: {', '.join(servers)}")

    async def disconnect(self) -> None:
        """
        Cancel pending reconnects, close the session and clear bookkeeping.

        Safe to call repeatedly and before any initialization.

        Raises:
            MCPError: connection error when closing a provider failed; the
                manager is disconnected regardless
        """
        await self._cancel_reconnect_tasks()

        async with self._lifecycle_lock:
            session = self._session
            self._session = None
            self._servers = {}
            self._empty_configuration = False
            self._state = ManagerState.DISCONNECTED

            if session is None:
                return

            try:
                await session.disconnect()
            except Exception as e:
                logger.error(f"Error during MCP disconnect: {e}")
                raise create_error(
                    "Failed to disconnect MCP servers", MCPErrorType.CONNECTION, cause=e
                ) from e

            logger.info("MCP servers disconnected successfully")

    async def reconnect(self, server_name: str | None = None) -> None:
        """
        Drop live connections and rediscover tools with retry.

        Args:
            server_name: Reconnect only this provider; all when omitted

        Raises:
            MCPError: retryable connection error once attempts are exhausted
        """
        async with self._lifecycle_lock:
            suffix = f" ({server_name})" if server_name else ""
            logger.info(f"Reconnecting to MCP servers{suffix}")

            options = self._connection_options
            try:
                session = self._session
                if session is None:
                    raise MCPError(
                        "MCP configuration not initialized",
                        error_type=MCPErrorType.CONFIGURATION,
                    )
                if server_name is not None and server_name not in self._servers:
                    raise MCPError(
                        f"MCP server {server_name} is not configured",
                        error_type=MCPErrorType.CONFIGURATION,
                        server_name=server_name,
                    )

                if self._state == ManagerState.INITIALIZED:
                    await session.reset(server_name)

                async def rediscover() -> list[MCPTool]:
                    tools = await session.get_tools()
                    failures = session.discovery_failures
                    failure = (
                        failures.get(server_name)
                        if server_name is not None
                        else next(iter(failures.values()), None)
                    )
                    if failure is not None:
                        raise failure
                    return tools

                tools = await with_retry(
                    rediscover,
                    f"reconnect{suffix}",
                    max_attempts=options.reconnect_attempts,
                    base_delay=options.reconnect_delay,
                )
            except Exception as e:
                logger.error(f"Failed to reconnect: {format_error(e)}")
                raise create_error(
                    "Failed to reconnect to MCP servers",
                    MCPErrorType.CONNECTION,
                    cause=e,
                    retryable=True,
                    server_name=server_name,
                ) from e

            logger.info(f"Successfully reconnected to MCP servers ({len(tools)} tools)")

    def schedule_reconnect(self, server_name: str | None = None, attempt: int = 0) -> "asyncio.Task[bool]":
        """
        Schedule a background reconnect after a jittered backoff delay.

        At most one reconnect is pending per provider (or for the whole
        session); disconnect() cancels every pending reconnect.

        Args:
            server_name: Provider to reconnect; the whole session when omitted
            attempt: Number of reconnects already tried, drives the backoff
        """
        key = server_name or "*"
        existing = self._reconnect_tasks.get(key)
        if existing is not None and not existing.done():
            return existing

        options = self._connection_options
        delay = reconnect_backoff(attempt, options.reconnect_delay, options.reconnect_max_delay)
        logger.info(f"Scheduling MCP reconnect for {key} in {delay:.2f}s")

        task = asyncio.create_task(
            self._delayed_reconnect(server_name, delay), name=f"mcp-reconnect-{key}"
        )
        self._reconnect_tasks[key] = task

        def _forget(done: "asyncio.Task[bool]") -> None:
            if self._reconnect_tasks.get(key) is done:
                del self._reconnect_tasks[key]

        task.add_done_callback(_forget)
        return task

    async def _delayed_reconnect(self, server_name: str | None, delay: float) -> bool:
        await asyncio.sleep(delay)
        try:
            await self.reconnect(server_name)
        except MCPError as e:
            logger.error(format_error(e, {"server_name": server_name}))
            return False
        return True

    async def _cancel_reconnect_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in self._reconnect_tasks.values() if task is not current]
        self._reconnect_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _release_session(self) -> None:
        session = self._session
        self._session = None
        self._servers = {}
        self._state = ManagerState.DISCONNECTED
        if session is not None:
            await session.disconnect()

    # ------------------------------------------------------------------
    # Discovery and invocation
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if self._state != ManagerState.INITIALIZED and not self._empty_configuration:
            raise MCPError(
                "MCP Manager not initialized. Call initialize_servers() first.",
                error_type=MCPErrorType.CONFIGURATION,
            )

    def is_connected(self, server_name: str | None = None) -> bool:
        """Report whether a live session exists (and includes ``server_name``)."""
        if self._state != ManagerState.INITIALIZED or self._session is None:
            return False
        if server_name is not None:
            return server_name in self._servers
        return True

    async def get_available_tools(self) -> list[MCPTool]:
        """
        Discover tools from all providers, schemas stripped.

        Returns:
            Sanitized tools; empty when no provider is enabled

        Raises:
            MCPError: when not initialized or discovery failed
        """
        self._ensure_initialized()

        session = self._session
        if session is None:
            return []

        try:
            tools = await session.get_tools()
        except Exception as e:
            logger.error(f"Failed to get available tools: {e}")
            raise MCPErrorClassifier.wrap("Failed to get available tools", e) from e

        return sanitize_tools(tools)

    async def get_toolsets(self) -> list[MCPToolset]:
        """Group available tools by origin provider."""
        return group_tools(await self.get_available_tools())

    async def execute_tool_call(self, tool_name: str, params: dict[str, Any] | None = None) -> Any:
        """
        Invoke a discovered tool by exact name.

        Args:
            tool_name: Tool name as returned by discovery
            params: Arguments passed through to the tool unchanged

        Returns:
            The handler's result, unchanged

        Raises:
            MCPError: classified failure naming the tool
        """
        context = {"tool_name": tool_name}
        server_name: str | None = None
        try:
            self._ensure_initialized()

            tools = await self.get_available_tools()
            tool = next((t for t in tools if t.name == tool_name), None)
            if tool is None:
                # The tool may belong to a provider whose discovery just failed
                failure = self._session.failure_for_tool(tool_name) if self._session else None
                if failure is not None:
                    raise failure
                raise MCPError(f"Tool {tool_name} not found", error_type=MCPErrorType.PROTOCOL)

            server_name = tool.server
            if tool.handler is None or not isinstance(tool.handler, ToolHandler):
                raise MCPError(
                    f"Tool {tool_name} does not have a handler",
                    error_type=MCPErrorType.PROTOCOL,
                )

            logger.info(f"Executing tool call: {tool_name}")
            result = await with_timeout(
                tool.handler.invoke(params or {}),
                self._connection_options.timeout,
                f"tool call {tool_name}",
            )
            logger.info(f"Tool call completed: {tool_name}")
            return result
        except Exception as e:
            wrapped = MCPErrorClassifier.wrap(
                f"Failed to execute tool call {tool_name}",
                e,
                context=context,
                server_name=server_name,
            )
            logger.error(format_error(wrapped, context))
            raise wrapped from e
