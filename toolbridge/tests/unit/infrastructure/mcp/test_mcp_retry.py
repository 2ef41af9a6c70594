"""Unit tests for MCP retry, backoff and timeout helpers."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from toolbridge.infrastructure.mcp import retry as retry_module
from toolbridge.infrastructure.mcp.errors import MCPError, MCPErrorType
from toolbridge.infrastructure.mcp.retry import (
    RetryPolicy,
    proportional_jitter,
    reconnect_backoff,
    with_retry,
    with_timeout,
)


@pytest.mark.unit
class TestRetryPolicy:
    """Tests for RetryPolicy delay calculation."""

    def test_exponential_delay(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)

        assert policy.get_delay(1) == 1.0
        assert policy.get_delay(2) == 2.0
        assert policy.get_delay(3) == 4.0

    def test_delay_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        assert policy.get_delay(10) == 30.0

    def test_jitter_applied_after_cap(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=lambda d: d + 0.5)
        assert policy.get_delay(10) == 5.5

    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=2)

        assert policy.should_retry(1, Exception("ECONNRESET")) is True
        assert policy.should_retry(2, Exception("ECONNRESET")) is False
        assert policy.should_retry(1, Exception("Invalid configuration")) is False

    async def test_on_retry_callback(self):
        operation = AsyncMock(side_effect=[Exception("timeout"), "ok"])
        on_retry = MagicMock()
        policy = RetryPolicy(base_delay=0.01)

        result = await policy.run(operation, "op", on_retry=on_retry)

        assert result == "ok"
        on_retry.assert_called_once()
        assert on_retry.call_args.args[0] == 1


@pytest.mark.unit
class TestWithRetry:
    """Tests for with_retry."""

    async def test_retryable_failures_then_success(self):
        operation = AsyncMock(side_effect=[Exception("ECONNRESET"), Exception("ECONNRESET"), "done"])

        result = await with_retry(operation, "op", max_attempts=3, base_delay=0.01)

        assert result == "done"
        assert operation.await_count == 3

    async def test_non_retryable_invoked_once(self):
        operation = AsyncMock(side_effect=ValueError("Invalid configuration"))

        with pytest.raises(ValueError, match="Invalid configuration"):
            await with_retry(operation, "op", max_attempts=3, base_delay=0.01)

        assert operation.await_count == 1

    async def test_last_error_raised_after_exhaustion(self):
        operation = AsyncMock(side_effect=Exception("ECONNREFUSED"))

        with pytest.raises(Exception, match="ECONNREFUSED"):
            await with_retry(operation, "op", max_attempts=2, base_delay=0.01)

        assert operation.await_count == 2

    async def test_explicit_retryable_flag_respected(self):
        operation = AsyncMock(side_effect=MCPError("connection lost", retryable=False))

        with pytest.raises(MCPError):
            await with_retry(operation, "op", base_delay=0.01)

        assert operation.await_count == 1

    async def test_first_success_returns_immediately(self):
        operation = AsyncMock(return_value=42)

        assert await with_retry(operation, "op") == 42
        assert operation.await_count == 1


@pytest.mark.unit
class TestReconnectBackoff:
    """Tests for scheduled reconnect backoff."""

    def test_grows_exponentially_without_jitter(self):
        no_jitter = lambda d: d  # noqa: E731
        assert reconnect_backoff(0, 5.0, 60.0, jitter=no_jitter) == 5.0
        assert reconnect_backoff(1, 5.0, 60.0, jitter=no_jitter) == 10.0
        assert reconnect_backoff(2, 5.0, 60.0, jitter=no_jitter) == 20.0

    def test_capped_before_jitter(self):
        assert reconnect_backoff(10, 5.0, 60.0, jitter=lambda d: d) == 60.0

    def test_default_jitter_range(self):
        for attempt in range(5):
            capped = min(5.0 * 2**attempt, 60.0)
            delay = reconnect_backoff(attempt, 5.0, 60.0)
            assert capped * 0.8 <= delay <= capped * 1.2

    def test_proportional_jitter_bounds(self):
        jitter = proportional_jitter(0.5, 0.5)
        assert jitter(10.0) == 5.0


@pytest.mark.unit
class TestWithTimeout:
    """Tests for with_timeout."""

    async def test_returns_result_in_time(self):
        async def quick():
            return "fast"

        assert await with_timeout(quick(), 1.0, "quick") == "fast"

    async def test_times_out_without_waiting_for_operation(self):
        async def slow():
            await asyncio.sleep(2)
            return "late"

        started = time.monotonic()
        with pytest.raises(MCPError) as exc_info:
            await with_timeout(slow(), 0.1, "op")
        elapsed = time.monotonic() - started

        assert exc_info.value.type == MCPErrorType.TIMEOUT
        assert exc_info.value.retryable is True
        assert "Operation op timed out after 0.1s" in str(exc_info.value)
        assert elapsed < 1.0

    async def test_operation_keeps_running_after_timeout(self):
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.2)
            finished.set()

        with pytest.raises(MCPError):
            await with_timeout(slow(), 0.05, "op")

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        assert finished.is_set()

    async def test_operation_error_propagates(self):
        async def failing():
            raise RuntimeError("broken")

        with pytest.raises(RuntimeError, match="broken"):
            await with_timeout(failing(), 1.0, "op")

    async def test_cancelled_caller_leaves_failure_observed(self):
        async def failing_later():
            await asyncio.sleep(0.05)
            raise RuntimeError("late failure")

        inner = asyncio.ensure_future(failing_later())
        with patch(
            "toolbridge.infrastructure.mcp.retry._discard_late_result",
            wraps=retry_module._discard_late_result,
        ) as discard:
            caller = asyncio.create_task(with_timeout(inner, 5.0, "op"))
            await asyncio.sleep(0.01)
            caller.cancel()
            with pytest.raises(asyncio.CancelledError):
                await caller

            await asyncio.wait({inner})
            await asyncio.sleep(0)

        discard.assert_called_once_with(inner)
        assert not inner.cancelled()
        assert isinstance(inner.exception(), RuntimeError)
