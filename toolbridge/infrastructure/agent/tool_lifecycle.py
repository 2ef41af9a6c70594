"""
Agent tool lifecycle.

MCP lifecycle policy:
- Primary agent: one MCPManager kept for the process lifetime and
  disconnected in shutdown().
- Delegate agents: when a delegate names its own descriptor file, a
  temporary MCPManager is created, its tools are fetched and it is
  disconnected right away. Delegates without a file get no private tools.

Tool loading never aborts startup; failures degrade to an empty tool list
with a warning.
"""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from toolbridge.domain.model.mcp.tool import MCPTool
from toolbridge.infrastructure.mcp.manager import MCPConnectionOptions, MCPManager
from toolbridge.infrastructure.mcp.retry import with_timeout

if TYPE_CHECKING:
    from toolbridge.configuration.config import Settings

logger = logging.getLogger(__name__)

ManagerFactory = Callable[..., MCPManager]


class SubAgentConfig(BaseModel):
    """Declaration of a delegate agent."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    description: str = ""
    mcp_file: str | None = Field(default=None, alias="mcpFile")


class AgentToolLifecycle:
    """
    Owns MCP tool loading for a primary agent and its delegates.

    Example:
        lifecycle = AgentToolLifecycle(sub_agents=[SubAgentConfig(id="r", name="Research")])
        primary_tools = await lifecycle.start()
        research_tools = lifecycle.get_delegate_tools("r")
        ...
        await lifecycle.shutdown()
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        config_root: str | Path = "config",
        base_dir: str | Path | None = None,
        sub_agents: Iterable[SubAgentConfig] = (),
        connection_options: MCPConnectionOptions | None = None,
        manager_factory: ManagerFactory | None = None,
    ) -> None:
        """
        Args:
            config_path: Descriptor file of the primary agent
            config_root: Directory delegate descriptor files must live under
            base_dir: Directory relative paths are resolved against (cwd by default)
            sub_agents: Delegate declarations
            connection_options: Retry/timeout tuning shared by all managers
            manager_factory: Called as ``factory(config_path=..., connection_options=...)``
        """
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.config_root = self._resolve(config_root)
        self.sub_agents = list(sub_agents)
        self.connection_options = connection_options or MCPConnectionOptions()
        self._manager_factory: ManagerFactory = manager_factory or MCPManager

        self._primary_manager = self._manager_factory(
            config_path=self._resolve(config_path) if config_path is not None else None,
            connection_options=self.connection_options,
        )
        self._primary_tools: list[MCPTool] = []
        self._delegate_tools: dict[str, list[MCPTool]] = {}
        self._started = False
        self._shut_down = False

    @classmethod
    def from_settings(
        cls, settings: "Settings", sub_agents: Iterable[SubAgentConfig] = ()
    ) -> "AgentToolLifecycle":
        return cls(
            config_path=settings.mcp_config_path,
            config_root=settings.mcp_config_root,
            sub_agents=sub_agents,
            connection_options=MCPConnectionOptions.from_settings(settings),
        )

    @property
    def primary_manager(self) -> MCPManager:
        return self._primary_manager

    @property
    def primary_tools(self) -> list[MCPTool]:
        return list(self._primary_tools)

    def get_delegate_tools(self, agent_id: str) -> list[MCPTool]:
        return list(self._delegate_tools.get(agent_id, []))

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        return candidate.resolve()

    async def start(self) -> list[MCPTool]:
        """
        Initialize the primary manager and load delegate tools.

        Returns:
            Tools of the primary agent (empty when MCP could not be initialized)
        """
        if self._started:
            return self.primary_tools
        self._started = True

        try:
            await self._primary_manager.initialize_servers()
            self._primary_tools = await self._primary_manager.get_available_tools()
            logger.info(
                f"Loaded {len(self._primary_tools)} MCP tools: "
                f"{[tool.name for tool in self._primary_tools]}"
            )
        except Exception as e:
            logger.warning(f"Failed to initialize MCP, continuing without MCP tools: {e}")
            self._primary_tools = []

        for sub_agent in self.sub_agents:
            tools = (
                await self.load_delegate_tools(sub_agent.mcp_file, sub_agent.id)
                if sub_agent.mcp_file
                else []
            )
            self._delegate_tools[sub_agent.id] = tools
            logger.info(
                f"Sub-agent created: {sub_agent.id} ({sub_agent.name}) with {len(tools)} MCP tools"
            )

        return self.primary_tools

    def resolve_descriptor_path(self, mcp_file: str, agent_id: str) -> Path | None:
        """Resolve a delegate descriptor path, rejecting paths outside the config root."""
        path = self._resolve(mcp_file)
        if not path.is_relative_to(self.config_root):
            logger.warning(
                f"Invalid MCP file path for sub-agent {agent_id}: {mcp_file} "
                f"(must be under {self.config_root})"
            )
            return None
        return path

    async def load_delegate_tools(self, mcp_file: str, agent_id: str) -> list[MCPTool]:
        """
        Load a delegate's private tools through a short-lived manager.

        The temporary manager is disconnected before this returns. Any
        failure yields an empty list.
        """
        path = self.resolve_descriptor_path(mcp_file, agent_id)
        if path is None:
            return []
        if not path.is_file():
            logger.warning(f"MCP file for sub-agent {agent_id} not found: {path}")
            return []

        try:
            tools = await with_timeout(
                self._fetch_and_disconnect(path, agent_id),
                self.connection_options.timeout,
                f"load MCP tools for sub-agent {agent_id}",
            )
        except Exception as e:
            logger.warning(f"Failed to load MCP tools for sub-agent {agent_id}: {e}")
            return []

        logger.info(f"Loaded {len(tools)} MCP tools for sub-agent {agent_id} from {path}")
        return tools

    async def _fetch_and_disconnect(self, path: Path, agent_id: str) -> list[MCPTool]:
        manager = self._manager_factory(
            config_path=path, connection_options=self.connection_options
        )
        try:
            await manager.initialize_servers()
            return await manager.get_available_tools()
        finally:
            await self._disconnect_quietly(manager, agent_id)

    @staticmethod
    async def _disconnect_quietly(manager: Any, agent_id: str) -> None:
        try:
            await manager.disconnect()
        except Exception as e:
            logger.warning(f"Failed to disconnect temporary MCP manager for sub-agent {agent_id}: {e}")

    async def shutdown(self) -> None:
        """Disconnect the primary manager. Later calls are no-ops."""
        if self._shut_down:
            return
        self._shut_down = True

        try:
            await self._primary_manager.disconnect()
            logger.info("MCP connections closed")
        except Exception as e:
            logger.error(f"Error during MCP shutdown: {e}", exc_info=True)
