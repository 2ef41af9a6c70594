"""
MCP Provider Descriptor Models.

Declarative description of how to reach one MCP tool provider, plus the
document-level container (``{"mcpServers": {...}}``).

Transport resolution:
- A ``url`` starting with ``http://`` or ``https://`` selects the network
  family. An explicit network ``type`` wins; otherwise a path segment
  containing "stream" selects ``streamable-http`` and everything else ``http``.
- Without a network URL, a non-empty ``command`` string is required and
  the transport is ``stdio``.
"""

from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    field_validator,
    model_validator,
)


class TransportType(str, Enum):
    """MCP provider transport types."""

    STDIO = "stdio"
    HTTP = "http"
    STREAMABLE_HTTP = "streamable-http"

    @property
    def is_network(self) -> bool:
        return self is not TransportType.STDIO

    @classmethod
    def normalize(cls, value: str) -> "TransportType":
        """Normalize a transport type string to enum (``sse`` is an alias of ``http``)."""
        normalized = value.lower().strip()
        if normalized == "sse":
            return cls.HTTP
        return cls(normalized)


def _is_network_url(url: str | None) -> bool:
    return bool(url) and (url.startswith("http://") or url.startswith("https://"))


def infer_network_transport(url: str) -> TransportType:
    """Pick the network transport from the URL path."""
    segments = [s for s in urlparse(url).path.lower().split("/") if s]
    if any("stream" in segment for segment in segments):
        return TransportType.STREAMABLE_HTTP
    return TransportType.HTTP


class MCPServerConfig(BaseModel):
    """
    Configuration for one MCP provider as it appears in the descriptor document.

    Example (process):
        {"command": "uvx", "args": ["mcp-server-fetch"], "env": {"DEBUG": "1"}}

    Example (network):
        {"url": "https://api.example.com/mcp", "headers": {"Authorization": "Bearer x"}}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(default="", description="Provider name (the mapping key)")
    type: StrictStr | None = Field(default=None, description="stdio, http, streamable-http or sse")
    command: StrictStr | None = Field(default=None, description="Executable for process providers")
    args: list[StrictStr] | None = Field(default=None, description="Process arguments")
    env: dict[StrictStr, StrictStr] | None = Field(default=None, description="Extra environment")
    url: StrictStr | None = Field(default=None, description="Endpoint for network providers")
    headers: dict[StrictStr, StrictStr] | None = Field(default=None, description="HTTP headers")
    disabled: StrictBool | None = Field(default=None, description="Skip this provider")
    enabled_flag: StrictBool | None = Field(default=None, alias="enabled")
    auto_approve: list[StrictStr] | None = Field(
        default=None,
        alias="autoApprove",
        description="Tool names exempt from confirmation (consumed by the agent runtime)",
    )

    transport: TransportType = Field(default=TransportType.STDIO, exclude=True)

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            TransportType.normalize(value)
        except ValueError:
            raise ValueError(
                "type must be one of: stdio, http, streamable-http, sse"
            ) from None
        return value

    @model_validator(mode="after")
    def resolve_transport(self) -> "MCPServerConfig":
        """Resolve the transport family and check its required fields."""
        if _is_network_url(self.url):
            declared = TransportType.normalize(self.type) if self.type else None
            if declared is not None and declared.is_network:
                self.transport = declared
            else:
                self.transport = infer_network_transport(self.url)  # type: ignore[arg-type]
            return self

        if not self.command or not self.command.strip():
            raise ValueError("command is required and must be a non-empty string")
        self.transport = TransportType.STDIO
        return self

    @property
    def enabled(self) -> bool:
        if self.disabled:
            return False
        return self.enabled_flag is not False

    def to_connection_params(self) -> dict[str, Any]:
        """Build the transport-specific parameters used to open a session."""
        if self.transport.is_network:
            return {
                "type": self.transport.value,
                "url": self.url,
                "headers": dict(self.headers or {}),
            }
        return {
            "type": TransportType.STDIO.value,
            "command": self.command,
            "args": list(self.args or []),
            "env": dict(self.env or {}),
        }


class MCPServersConfig(BaseModel):
    """Descriptor document: provider name -> provider configuration."""

    model_config = ConfigDict(populate_by_name=True)

    servers: dict[str, MCPServerConfig] = Field(default_factory=dict, alias="mcpServers")

    def enabled_servers(self) -> dict[str, MCPServerConfig]:
        """Providers that take part in session construction, in document order."""
        return {name: server for name, server in self.servers.items() if server.enabled}

    def __len__(self) -> int:
        return len(self.servers)
