"""MCP provider connection layer."""

from toolbridge.infrastructure.mcp.client import MCPProviderClient
from toolbridge.infrastructure.mcp.config_loader import (
    MCPConfigLoader,
    validate_config,
    validate_server_config,
)
from toolbridge.infrastructure.mcp.errors import (
    MCPError,
    MCPErrorClassifier,
    MCPErrorType,
    create_error,
    create_timeout_error,
    format_error,
)
from toolbridge.infrastructure.mcp.manager import (
    ManagerState,
    MCPConnectionOptions,
    MCPManager,
)
from toolbridge.infrastructure.mcp.retry import (
    RetryPolicy,
    reconnect_backoff,
    with_retry,
    with_timeout,
)
from toolbridge.infrastructure.mcp.schema_sanitizer import sanitize_tool_schema, sanitize_tools
from toolbridge.infrastructure.mcp.session import MCPProviderSession, SessionToolHandler

__all__ = [
    "MCPConfigLoader",
    "MCPConnectionOptions",
    "MCPError",
    "MCPErrorClassifier",
    "MCPErrorType",
    "MCPManager",
    "MCPProviderClient",
    "MCPProviderSession",
    "ManagerState",
    "RetryPolicy",
    "SessionToolHandler",
    "create_error",
    "create_timeout_error",
    "format_error",
    "reconnect_backoff",
    "sanitize_tool_schema",
    "sanitize_tools",
    "validate_config",
    "validate_server_config",
    "with_retry",
    "with_timeout",
]
