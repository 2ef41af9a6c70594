"""toolbridge: MCP tool-provider connection and resilience layer."""

__version__ = "0.1.0"
