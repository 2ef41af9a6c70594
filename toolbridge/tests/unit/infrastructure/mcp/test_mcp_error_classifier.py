"""Unit tests for MCP error classification."""

import asyncio
import errno

import pytest

from toolbridge.infrastructure.mcp.errors import (
    MCPError,
    MCPErrorClassifier,
    MCPErrorType,
    create_error,
    create_timeout_error,
    format_error,
)


@pytest.mark.unit
class TestMCPError:
    """Tests for MCPError."""

    def test_defaults(self):
        error = MCPError("boom")

        assert str(error) == "boom"
        assert error.type == MCPErrorType.PROTOCOL
        assert error.retryable is False
        assert error.server_name is None
        assert error.context == {}

    def test_to_dict(self):
        cause = ConnectionRefusedError("refused")
        error = MCPError(
            "Failed",
            error_type=MCPErrorType.CONNECTION,
            retryable=True,
            server_name="files",
            retry_after=2,
            context={"tool_name": "read_file"},
            cause=cause,
        )

        result = error.to_dict()

        assert result["error_type"] == "connection"
        assert result["retryable"] is True
        assert result["server_name"] == "files"
        assert result["retry_after"] == 2
        assert result["context"] == {"tool_name": "read_file"}
        assert result["cause"] == "ConnectionRefusedError: refused"


@pytest.mark.unit
class TestMCPErrorClassifierCategorize:
    """Tests for keyword based categorization."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("connect ECONNREFUSED 127.0.0.1:3000", MCPErrorType.CONNECTION),
            ("Connection reset by peer", MCPErrorType.CONNECTION),
            ("Rate limit exceeded", MCPErrorType.CONNECTION),
            ("Request timed out", MCPErrorType.TIMEOUT),
            ("ETIMEDOUT", MCPErrorType.TIMEOUT),
            ("Invalid configuration", MCPErrorType.CONFIGURATION),
            ("protocol violation", MCPErrorType.PROTOCOL),
            ("Invalid response", MCPErrorType.PROTOCOL),
            ("something odd", MCPErrorType.PROTOCOL),
        ],
    )
    def test_keywords(self, message, expected):
        assert MCPErrorClassifier.categorize(Exception(message)) == expected

    def test_connection_checked_before_timeout(self):
        error = Exception("connection timeout")
        assert MCPErrorClassifier.categorize(error) == MCPErrorType.CONNECTION

    def test_builtin_types_without_message(self):
        assert MCPErrorClassifier.categorize(asyncio.TimeoutError()) == MCPErrorType.TIMEOUT
        assert MCPErrorClassifier.categorize(BrokenPipeError()) == MCPErrorType.CONNECTION

    def test_mcp_error_keeps_its_type(self):
        error = MCPError("connection lost", error_type=MCPErrorType.CONFIGURATION)
        assert MCPErrorClassifier.categorize(error) == MCPErrorType.CONFIGURATION


@pytest.mark.unit
class TestMCPErrorClassifierRetryable:
    """Tests for retryability decisions."""

    @pytest.mark.parametrize(
        "message",
        ["ECONNREFUSED", "econnreset", "getaddrinfo ENOTFOUND host", "read timeout", "connection closed"],
    )
    def test_retryable_messages(self, message):
        assert MCPErrorClassifier.is_retryable(Exception(message)) is True

    def test_not_retryable(self):
        assert MCPErrorClassifier.is_retryable(Exception("Invalid configuration")) is False
        assert MCPErrorClassifier.is_retryable(ValueError("bad value")) is False

    def test_explicit_flag_wins(self):
        assert MCPErrorClassifier.is_retryable(MCPError("connection lost", retryable=False)) is False
        assert MCPErrorClassifier.is_retryable(MCPError("odd", retryable=True)) is True

    def test_errno_code(self):
        error = OSError(errno.ECONNREFUSED, "could not reach")
        assert MCPErrorClassifier.is_retryable(error) is True

    def test_string_code_attribute(self):
        error = Exception("failed")
        error.code = "EHOSTUNREACH"
        assert MCPErrorClassifier.is_retryable(error) is True

    def test_timeout_without_message(self):
        assert MCPErrorClassifier.is_retryable(asyncio.TimeoutError()) is True


@pytest.mark.unit
class TestMCPErrorClassifierClassify:
    """Tests for classify and wrap."""

    def test_connection_refused(self):
        error = MCPErrorClassifier.classify(Exception("ECONNREFUSED"))

        assert error.type == MCPErrorType.CONNECTION
        assert error.retryable is True

    def test_invalid_configuration(self):
        error = MCPErrorClassifier.classify(Exception("Invalid configuration"))

        assert error.type == MCPErrorType.CONFIGURATION
        assert error.retryable is False

    def test_keeps_cause_and_context(self):
        original = RuntimeError("something odd")

        error = MCPErrorClassifier.classify(original, {"tool_name": "x"}, server_name="s")

        assert error.cause is original
        assert error.context == {"tool_name": "x"}
        assert error.server_name == "s"

    def test_retry_after_copied(self):
        original = Exception("rate limit")
        original.retry_after = 3

        assert MCPErrorClassifier.classify(original).retry_after == 3.0

    def test_mcp_error_returned_as_is(self):
        original = MCPError("Tool x not found", context={"a": 1})

        error = MCPErrorClassifier.classify(original, {"tool_name": "x"})

        assert error is original
        assert error.context == {"tool_name": "x", "a": 1}

    def test_wrap_prefixes_message(self):
        original = ConnectionResetError("connection reset")

        error = MCPErrorClassifier.wrap("Failed to get available tools", original)

        assert str(error) == "Failed to get available tools: connection reset"
        assert error.type == MCPErrorType.CONNECTION
        assert error.retryable is True
        assert error.cause is original

    def test_wrap_message_for_empty_exception(self):
        error = MCPErrorClassifier.wrap("Failed", asyncio.TimeoutError())
        assert str(error) == "Failed: TimeoutError"
        assert error.type == MCPErrorType.TIMEOUT


@pytest.mark.unit
class TestErrorHelpers:
    """Tests for error construction and formatting helpers."""

    def test_create_error(self):
        cause = ValueError("bad")

        error = create_error("Failed to initialize MCP servers", MCPErrorType.CONFIGURATION, cause)

        assert str(error) == "Failed to initialize MCP servers: bad"
        assert error.type == MCPErrorType.CONFIGURATION
        assert error.cause is cause

    def test_create_timeout_error(self):
        error = create_timeout_error("list_tools", 0.5)

        assert str(error) == "Operation list_tools timed out after 0.5s"
        assert error.type == MCPErrorType.TIMEOUT
        assert error.retryable is True

    def test_format_error(self):
        error = MCPError("boom", error_type=MCPErrorType.CONNECTION, server_name="files")

        formatted = format_error(error, {"tool_name": "read_file"})

        assert formatted == (
            '[MCP Error] boom (Type: connection) (Server: files) Context: {"tool_name": "read_file"}'
        )

    def test_format_plain_exception(self):
        assert format_error(ValueError("bad")) == "[MCP Error] bad"
