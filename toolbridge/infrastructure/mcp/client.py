"""
MCP provider client built on the official MCP Python SDK.

One client owns one ``mcp.ClientSession`` to one provider. Supported
transports:
- stdio: subprocess spawned via ``mcp.client.stdio.stdio_client``
- http: Server-Sent Events via ``mcp.client.sse.sse_client``
- streamable-http: ``mcp.client.streamable_http.streamable_http_client``
"""

import asyncio
import contextlib
import logging
import os
from contextlib import AsyncExitStack
from typing import Any

import httpx
from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamable_http_client

from toolbridge.domain.model.mcp.descriptor import TransportType
from toolbridge.infrastructure.mcp.errors import MCPError, MCPErrorType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class MCPProviderClient:
    """
    Connection to a single MCP provider.

    Connects lazily and is safe to connect from concurrent callers.
    ``reset()`` drops the connection and lets the next request reconnect;
    ``close()`` is final: requests no longer reconnect implicitly and
    ``call_tool`` runs on a connection opened and closed around the call.
    """

    def __init__(
        self,
        name: str,
        params: dict[str, Any],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize provider client.

        Args:
            name: Provider name
            params: Connection parameters (``{type, url, headers}`` for network
                providers, ``{type: "stdio", command, args, env}`` for processes)
            timeout: Bound in seconds for initialize/list/call requests
        """
        self.name = name
        self.params = params
        self.timeout = timeout
        self.transport_type = TransportType.normalize(params.get("type", "stdio"))

        self._session: ClientSession | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._lock = asyncio.Lock()
        self._server_info: dict[str, Any] | None = None
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def server_info(self) -> dict[str, Any] | None:
        return self._server_info

    async def connect(self) -> None:
        """Open the transport and perform the MCP initialization handshake."""
        async with self._lock:
            if self._session is not None:
                return

            exit_stack = AsyncExitStack()
            await exit_stack.__aenter__()
            try:
                session, result = await self._open_session(exit_stack)
            except BaseException as e:
                with contextlib.suppress(Exception):
                    await exit_stack.__aexit__(type(e), e, e.__traceback__)
                raise

            # mcp 2.x names the field server_info, 1.x serverInfo
            server_info = getattr(result, "server_info", None) or getattr(
                result, "serverInfo", None
            )
            self._server_info = server_info.model_dump() if server_info is not None else None
            self._session = session
            self._exit_stack = exit_stack
            self._closed = False
            logger.info(f"MCP server {self.name} connected via {self.transport_type.value}")

    async def _open_session(self, exit_stack: AsyncExitStack) -> tuple[ClientSession, Any]:
        read_stream, write_stream = await self._open_transport(exit_stack)
        session = await exit_stack.enter_async_context(ClientSession(read_stream, write_stream))
        result = await asyncio.wait_for(session.initialize(), timeout=self.timeout)
        return session, result

    async def _open_transport(self, exit_stack: AsyncExitStack) -> tuple[Any, Any]:
        if self.transport_type == TransportType.STDIO:
            custom_env = self.params.get("env") or {}
            server_params = StdioServerParameters(
                command=self.params["command"],
                args=list(self.params.get("args") or []),
                # Merge with the system environment so PATH etc. survive
                env={**os.environ, **custom_env} if custom_env else None,
            )
            read_stream, write_stream = await exit_stack.enter_async_context(
                stdio_client(server_params)
            )
            return read_stream, write_stream

        url = self.params["url"]
        headers = self.params.get("headers") or {}

        if self.transport_type == TransportType.STREAMABLE_HTTP:
            http_client = await exit_stack.enter_async_context(
                httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(self.timeout))
            )
            read_stream, write_stream, _ = await exit_stack.enter_async_context(
                streamable_http_client(url, http_client=http_client)
            )
            return read_stream, write_stream

        read_stream, write_stream = await exit_stack.enter_async_context(
            sse_client(url, headers=headers, timeout=self.timeout)
        )
        return read_stream, write_stream

    async def close(self) -> None:
        """Close the session and the underlying transport for good. Idempotent."""
        await self._disconnect(final=True)

    async def reset(self) -> None:
        """Close the current connection; the next request reconnects."""
        await self._disconnect(final=False)

    async def _disconnect(self, final: bool) -> None:
        async with self._lock:
            exit_stack = self._exit_stack
            self._session = None
            self._exit_stack = None
            self._server_info = None
            if final:
                self._closed = True

        if exit_stack is None:
            return

        # SDK teardown may raise anyio cancel-scope errors when the stack was
        # entered from another task; the connection is gone either way.
        with contextlib.suppress(Exception):
            await exit_stack.aclose()
        logger.info(f"MCP server {self.name} disconnected")

    async def _require_session(self) -> ClientSession:
        if self._closed:
            raise MCPError(
                f"MCP server {self.name} is closed",
                error_type=MCPErrorType.CONNECTION,
                server_name=self.name,
            )
        if self._session is None:
            await self.connect()
        assert self._session is not None
        return self._session

    async def list_tools(self) -> list[Any]:
        """List tools advertised by the provider (``mcp.types.Tool`` objects)."""
        session = await self._require_session()
        result = await asyncio.wait_for(session.list_tools(), timeout=self.timeout)
        return list(getattr(result, "tools", []) or [])

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a tool and return the raw ``CallToolResult``."""
        if self._closed:
            return await self._call_tool_scoped(tool_name, arguments)
        session = await self._require_session()
        return await asyncio.wait_for(
            session.call_tool(tool_name, arguments=arguments or {}),
            timeout=self.timeout,
        )

    async def _call_tool_scoped(self, tool_name: str, arguments: dict[str, Any] | None) -> Any:
        logger.debug(f"MCP server {self.name} is closed, calling {tool_name} on a scoped connection")
        async with AsyncExitStack() as exit_stack:
            session, _ = await self._open_session(exit_stack)
            return await asyncio.wait_for(
                session.call_tool(tool_name, arguments=arguments or {}),
                timeout=self.timeout,
            )

    def __repr__(self) -> str:
        return f"MCPProviderClient(name={self.name!r}, transport={self.transport_type.value!r})"
