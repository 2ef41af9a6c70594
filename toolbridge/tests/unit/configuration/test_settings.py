"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError

from toolbridge.configuration.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the developer environment and any .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "MCP_CONFIG_PATH",
        "MCP_CONFIG_ROOT",
        "MCP_RECONNECT_ATTEMPTS",
        "MCP_RECONNECT_DELAY",
        "MCP_RECONNECT_MAX_DELAY",
        "MCP_TIMEOUT",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.unit
class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.mcp_config_path == "config/mcp.json"
        assert settings.mcp_config_root == "config"
        assert settings.mcp_reconnect_attempts == 3
        assert settings.mcp_reconnect_delay == 5.0
        assert settings.mcp_reconnect_max_delay == 60.0
        assert settings.mcp_timeout == 30.0
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MCP_TIMEOUT", "12.5")
        monkeypatch.setenv("MCP_RECONNECT_ATTEMPTS", "5")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "JSON")

        settings = Settings()

        assert settings.mcp_timeout == 12.5
        assert settings.mcp_reconnect_attempts == 5
        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("MCP_CONFIG_PATH=custom/servers.json\n")

        assert Settings().mcp_config_path == "custom/servers.json"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("MCP_RECONNECT_ATTEMPTS", "0"),
            ("MCP_RECONNECT_DELAY", "0"),
            ("MCP_TIMEOUT", "-1"),
            ("LOG_LEVEL", "verbose"),
            ("LOG_FORMAT", "xml"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
