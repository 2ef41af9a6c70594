"""
MCP descriptor loading and validation.

Reads the provider descriptor document (JSON, or YAML by file extension)
and validates every entry, failing fast with the offending provider and
field named in the error.
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toolbridge.domain.model.mcp.descriptor import MCPServerConfig, MCPServersConfig
from toolbridge.infrastructure.mcp.errors import MCPError, MCPErrorType

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "mcp.json"

_YAML_SUFFIXES = {".yaml", ".yml"}


def _config_error(message: str, server_name: str | None = None) -> MCPError:
    return MCPError(
        message,
        error_type=MCPErrorType.CONFIGURATION,
        retryable=False,
        server_name=server_name,
    )


def _describe_validation_error(error: ValidationError) -> tuple[str, str]:
    """Return ``(field, message)`` for the first pydantic error."""
    first = error.errors()[0]
    loc = [str(part) for part in first.get("loc", ()) if str(part)]
    field = ".".join(loc) if loc else ""
    message = str(first.get("msg", "invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    return field, message


def validate_server_config(server_name: str, raw: Any) -> MCPServerConfig:
    """
    Validate a single provider entry.

    Raises:
        MCPError: configuration error naming the provider and field
    """
    if not isinstance(raw, Mapping):
        raise _config_error(
            f"Invalid MCP server configuration for {server_name}: entry must be an object",
            server_name=server_name,
        )
    try:
        return MCPServerConfig.model_validate({**raw, "name": server_name})
    except ValidationError as e:
        field, message = _describe_validation_error(e)
        prefix = f"{field} " if field and not message.startswith(field) else ""
        raise _config_error(
            f"Invalid MCP server configuration for {server_name}: {prefix}{message}",
            server_name=server_name,
        ) from e


def validate_config(raw: Any) -> MCPServersConfig:
    """
    Validate a whole descriptor document (``{"mcpServers": {...}}``).

    Raises:
        MCPError: configuration error on the first invalid entry
    """
    if isinstance(raw, MCPServersConfig):
        return raw
    if not isinstance(raw, Mapping):
        raise _config_error("Invalid MCP configuration: document must be an object")

    servers = raw.get("mcpServers")
    if not isinstance(servers, Mapping):
        raise _config_error("Invalid MCP configuration: mcpServers must be an object")

    validated: dict[str, MCPServerConfig] = {}
    for server_name, server_config in servers.items():
        validated[str(server_name)] = validate_server_config(str(server_name), server_config)
    return MCPServersConfig(servers=validated)


class MCPConfigLoader:
    """
    Loads provider descriptors from a file.

    A missing file yields an empty provider set; malformed content raises a
    configuration MCPError.
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        self.config_path = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_PATH

    def get_config_path(self) -> Path:
        return self.config_path

    def load_raw(self) -> Any:
        """Read and parse the descriptor document without validating it."""
        content = self.config_path.read_text(encoding="utf-8")
        if self.config_path.suffix.lower() in _YAML_SUFFIXES:
            try:
                return yaml.safe_load(content) or {}
            except yaml.YAMLError as e:
                raise _config_error(f"Invalid YAML in MCP configuration file: {e}") from e
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise _config_error(f"Invalid JSON in MCP configuration file: {e}") from e

    async def load_config(self) -> MCPServersConfig:
        """Load and validate the descriptor document."""
        if not self.config_path.exists():
            logger.warning(
                f"MCP configuration file not found at {self.config_path}. "
                "Using empty configuration."
            )
            return MCPServersConfig()

        config = validate_config(self.load_raw())
        logger.debug(f"Loaded {len(config)} MCP server(s) from {self.config_path}")
        return config
