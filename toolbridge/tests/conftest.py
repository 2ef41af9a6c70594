"""Pytest configuration and shared fixtures for testing."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from toolbridge.infrastructure.mcp.manager import MCPConnectionOptions
from toolbridge.infrastructure.mcp.session import MCPProviderSession

# --- Descriptor Fixtures ---


@pytest.fixture
def weather_tools():
    """Tools advertised by the fake "weather" provider."""
    return [
        {
            "name": "get_weather",
            "description": "Current weather for a city",
            "inputSchema": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        },
        {
            "name": "get_forecast",
            "description": "Five day forecast",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "location": {
                        "type": "object",
                        "properties": {
                            "lat": {"type": "number"},
                            "lon": {"type": "number"},
                            "meta": {"anyOf": [{"$ref": "#/$defs/Meta"}, {"type": "null"}]},
                        },
                    }
                },
                "$defs": {"Meta": {"type": "object"}},
            },
        },
    ]


@pytest.fixture
def files_tools():
    """Tools advertised by the fake "files" provider."""
    return [
        {"name": "read_file", "description": "Read a file", "inputSchema": {"type": "object"}},
    ]


@pytest.fixture
def mcp_config_dict():
    """Descriptor document with one network and one process provider."""
    return {
        "mcpServers": {
            "weather": {"url": "https://weather.example.com/mcp"},
            "files": {"command": "npx", "args": ["-y", "@mcp/server-files"]},
        }
    }


@pytest.fixture
def write_mcp_config(tmp_path):
    """Write a descriptor document below ``tmp_path/config`` and return its path."""

    def _write(document, name="mcp.json"):
        config_dir = tmp_path / "config"
        config_dir.mkdir(exist_ok=True)
        path = config_dir / name
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write


# --- Fake Provider Fixtures ---


@pytest.fixture
def provider_catalog(weather_tools, files_tools):
    """Provider name -> advertised tools, served by the fake client factory."""
    return {"weather": weather_tools, "files": files_tools}


@pytest.fixture
def fake_client_factory(provider_catalog):
    """Client factory producing mock provider clients.

    Created clients are exposed through ``factory.clients`` keyed by provider name.
    """
    clients = {}

    def factory(name, params, timeout):
        client = MagicMock()
        client.name = name
        client.params = params
        client.timeout = timeout
        client.list_tools = AsyncMock(return_value=list(provider_catalog.get(name, [])))
        client.call_tool = AsyncMock(
            side_effect=lambda tool_name, arguments=None: {
                "content": [{"type": "text", "text": f"{tool_name} ok"}],
                "arguments": arguments,
            }
        )
        client.close = AsyncMock()
        client.reset = AsyncMock()
        clients[name] = client
        return client

    factory.clients = clients
    return factory


@pytest.fixture
def fake_session_factory(fake_client_factory):
    """Session factory for MCPManager backed by mock provider clients.

    Created sessions are recorded on ``factory.sessions``.
    """
    sessions = []

    def factory(servers, timeout):
        session = MCPProviderSession(servers, timeout=timeout, client_factory=fake_client_factory)
        sessions.append(session)
        return session

    factory.sessions = sessions
    factory.clients = fake_client_factory.clients
    return factory


@pytest.fixture
def fast_connection_options():
    """Connection options with tiny delays so retry paths run quickly."""
    return MCPConnectionOptions(
        reconnect_attempts=3,
        reconnect_delay=0.01,
        reconnect_max_delay=0.05,
        timeout=1.0,
    )
