"""Configuration management for toolbridge."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # MCP descriptor source
    mcp_config_path: str = Field(default="config/mcp.json", alias="MCP_CONFIG_PATH")
    mcp_config_root: str = Field(default="config", alias="MCP_CONFIG_ROOT")

    # MCP connection options (seconds)
    mcp_reconnect_attempts: int = Field(default=3, alias="MCP_RECONNECT_ATTEMPTS")
    mcp_reconnect_delay: float = Field(default=5.0, alias="MCP_RECONNECT_DELAY")
    mcp_reconnect_max_delay: float = Field(default=60.0, alias="MCP_RECONNECT_MAX_DELAY")
    mcp_timeout: float = Field(default=30.0, alias="MCP_TIMEOUT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mcp_reconnect_attempts")
    @classmethod
    def validate_reconnect_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MCP_RECONNECT_ATTEMPTS must be at least 1")
        return value

    @field_validator("mcp_reconnect_delay", "mcp_reconnect_max_delay", "mcp_timeout")
    @classmethod
    def validate_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("MCP delays and timeouts must be positive")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        if value is None:
            return "INFO"
        normalized = str(value).strip().upper()
        if normalized in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return normalized
        raise ValueError("LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, value: str | None) -> str:
        if value is None:
            return "text"
        normalized = str(value).strip().lower()
        if normalized in {"text", "json"}:
            return normalized
        raise ValueError("LOG_FORMAT must be one of: text, json")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
