"""MCP error handling and classification.

Defines the closed error taxonomy for the provider connection layer and
the classifier that maps arbitrary exceptions onto it, together with the
retryability decision used by the retry policy.
"""

import errno
import json
from enum import Enum
from typing import Any


class MCPErrorType(str, Enum):
    """Classification of MCP failures for handling strategy."""

    # Provider unreachable, refused or reset
    CONNECTION = "connection"
    # Malformed request/response, unknown tool, missing handler
    PROTOCOL = "protocol"
    # Operation exceeded its bound
    TIMEOUT = "timeout"
    # Malformed or missing descriptor
    CONFIGURATION = "configuration"


class MCPError(Exception):
    """
    Classified failure raised by the MCP connection layer.

    Wraps the original exception (kept on ``cause`` and chained) with its
    category, retryability and, when known, the originating provider.
    """

    def __init__(
        self,
        message: str,
        error_type: MCPErrorType = MCPErrorType.PROTOCOL,
        retryable: bool = False,
        server_name: str | None = None,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.retryable = retryable
        self.server_name = server_name
        self.retry_after = retry_after
        self.context = context or {}
        self.cause = cause

    @property
    def type(self) -> MCPErrorType:
        return self.error_type

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }
        if self.server_name is not None:
            result["server_name"] = self.server_name
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return (
            f"MCPError({self.message!r}, error_type={self.error_type.value!r}, "
            f"retryable={self.retryable!r}, server_name={self.server_name!r})"
        )


class MCPErrorClassifier:
    """
    Classify errors from MCP operations.

    Keyword sets are checked in order and the first match wins; the
    message is lower-cased before matching.
    """

    CONNECTION_PATTERNS = [
        "econnrefused",
        "econnreset",
        "refused",
        "reset",
        "unreachable",
        "broken pipe",
        "epipe",
        "rate limit",
        "connection",
    ]

    TIMEOUT_PATTERNS = [
        "timeout",
        "timed out",
        "etimedout",
    ]

    CONFIGURATION_PATTERNS = [
        "config",
    ]

    PROTOCOL_PATTERNS = [
        "protocol",
        "invalid",
    ]

    # Substrings marking an error as transient (matched case-insensitively)
    RETRYABLE_MESSAGES = [
        "ECONNREFUSED",
        "ECONNRESET",
        "ETIMEDOUT",
        "ENOTFOUND",
        "ENETUNREACH",
        "EHOSTUNREACH",
        "EPIPE",
        "timeout",
        "connection",
    ]

    @classmethod
    def categorize(cls, error: BaseException) -> MCPErrorType:
        """Map an exception onto the error taxonomy."""
        if isinstance(error, MCPError):
            return error.error_type

        message = str(error).lower()

        if any(pattern in message for pattern in cls.CONNECTION_PATTERNS):
            return MCPErrorType.CONNECTION
        if any(pattern in message for pattern in cls.TIMEOUT_PATTERNS):
            return MCPErrorType.TIMEOUT
        if any(pattern in message for pattern in cls.CONFIGURATION_PATTERNS):
            return MCPErrorType.CONFIGURATION
        if any(pattern in message for pattern in cls.PROTOCOL_PATTERNS):
            return MCPErrorType.PROTOCOL

        # Builtin exception types carry meaning even with an empty message
        if isinstance(error, TimeoutError):
            return MCPErrorType.TIMEOUT
        if isinstance(error, ConnectionError):
            return MCPErrorType.CONNECTION

        return MCPErrorType.PROTOCOL

    @classmethod
    def is_retryable(cls, error: BaseException) -> bool:
        """Decide retryability; an explicit ``retryable`` flag always wins."""
        explicit = getattr(error, "retryable", None)
        if isinstance(explicit, bool):
            return explicit

        # The type name covers builtins raised without a message (TimeoutError())
        message = f"{type(error).__name__}: {error}".lower()
        code = cls._error_code(error)
        for candidate in cls.RETRYABLE_MESSAGES:
            needle = candidate.lower()
            if needle in message or (code and needle in code.lower()):
                return True
        return False

    @classmethod
    def classify(
        cls,
        error: BaseException,
        context: dict[str, Any] | None = None,
        server_name: str | None = None,
    ) -> MCPError:
        """
        Classify an error into an MCPError.

        Args:
            error: The exception that occurred
            context: Additional context (e.g. ``{"tool_name": ...}``)
            server_name: Originating provider, when known

        Returns:
            MCPError with category and retry decision. An MCPError passed in
            is returned as-is with the context merged.
        """
        ctx = dict(context or {})
        if isinstance(error, MCPError):
            error.context = {**ctx, **error.context}
            if server_name and not error.server_name:
                error.server_name = server_name
            return error

        return MCPError(
            str(error) or type(error).__name__,
            error_type=cls.categorize(error),
            retryable=cls.is_retryable(error),
            server_name=server_name,
            retry_after=cls._retry_after(error),
            context=ctx,
            cause=error,
        )

    @classmethod
    def wrap(
        cls,
        message: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
        server_name: str | None = None,
    ) -> MCPError:
        """Classify ``error`` and re-label it with a caller-supplied message prefix."""
        classified = cls.classify(error, context=context, server_name=server_name)
        return MCPError(
            f"{message}: {classified.message}",
            error_type=classified.error_type,
            retryable=classified.retryable,
            server_name=classified.server_name,
            retry_after=classified.retry_after,
            context=classified.context,
            cause=error,
        )

    @staticmethod
    def _error_code(error: BaseException) -> str | None:
        code = getattr(error, "code", None)
        if isinstance(code, str):
            return code
        err_no = getattr(error, "errno", None)
        if isinstance(err_no, int):
            return errno.errorcode.get(err_no)
        return None

    @staticmethod
    def _retry_after(error: BaseException) -> float | None:
        value = getattr(error, "retry_after", None)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None


def create_error(
    message: str,
    error_type: MCPErrorType,
    cause: BaseException | None = None,
    retryable: bool = False,
    server_name: str | None = None,
) -> MCPError:
    """Build an MCPError with a fixed category (used for stable message prefixes)."""
    if cause is not None:
        message = f"{message}: {cause}"
    return MCPError(
        message,
        error_type=error_type,
        retryable=retryable,
        server_name=server_name,
        cause=cause,
    )


def create_timeout_error(operation_name: str, timeout: float) -> MCPError:
    """Timeout error raised when an operation exceeds its bound."""
    return MCPError(
        f"Operation {operation_name} timed out after {timeout}s",
        error_type=MCPErrorType.TIMEOUT,
        retryable=True,
        context={"operation": operation_name, "timeout": timeout},
    )


def format_error(error: BaseException, context: dict[str, Any] | None = None) -> str:
    """Render an error for log output."""
    message = f"[MCP Error] {error}"

    error_type = getattr(error, "error_type", None)
    if isinstance(error_type, MCPErrorType):
        message += f" (Type: {error_type.value})"

    server_name = getattr(error, "server_name", None)
    if server_name:
        message += f" (Server: {server_name})"

    if context:
        message += f" Context: {json.dumps(context, default=str, ensure_ascii=False)}"

    return message
