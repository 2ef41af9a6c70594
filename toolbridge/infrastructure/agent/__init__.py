"""Agent-side MCP tool loading."""

from toolbridge.infrastructure.agent.tool_lifecycle import AgentToolLifecycle, SubAgentConfig

__all__ = ["AgentToolLifecycle", "SubAgentConfig"]
