"""Retry Policy for MCP operations.

Exponential backoff, optional jitter and timeout racing, independent of any
particular transport.

Example:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    tools = await policy.run(session.list_tools, "list_tools")
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from toolbridge.infrastructure.mcp.errors import MCPErrorClassifier, create_timeout_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_ATTEMPTS = 3
BASE_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 30.0

JitterFunc = Callable[[float], float]
RetryCallback = Callable[[int, BaseException], Any]


def proportional_jitter(low: float = 0.8, high: float = 1.2) -> JitterFunc:
    """Jitter that scales a delay by a random factor in ``[low, high]``."""

    def _jitter(delay: float) -> float:
        return delay * random.uniform(low, high)

    return _jitter


@dataclass
class RetryPolicy:
    """
    Retry strategy for a single asynchronous operation.

    Attributes:
        max_attempts: Total number of invocations, including the first one
        base_delay: Delay in seconds before the first retry
        max_delay: Cap applied before jitter
        backoff_factor: Multiplier applied for each further retry
        jitter: Optional function randomizing the capped delay
        retry_if: Predicate deciding whether an error is worth another attempt
    """

    max_attempts: int = MAX_RETRY_ATTEMPTS
    base_delay: float = BASE_RETRY_DELAY
    max_delay: float = MAX_RETRY_DELAY
    backoff_factor: float = 2.0
    jitter: JitterFunc | None = None
    retry_if: Callable[[BaseException], bool] = MCPErrorClassifier.is_retryable

    def get_delay(self, attempt: int) -> float:
        """
        Calculate the delay after a failed attempt.

        Args:
            attempt: Attempt number that just failed (1-based)

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        if self.jitter is not None:
            delay = self.jitter(delay)
        return delay

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        if attempt >= self.max_attempts:
            return False
        return self.retry_if(error)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        on_retry: RetryCallback | None = None,
    ) -> T:
        """
        Invoke ``operation`` until it succeeds or the policy gives up.

        Non-retryable errors and the error of the last attempt are re-raised
        unchanged.
        """
        attempts = max(1, int(self.max_attempts))
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= attempts or not self.retry_if(e):
                    raise

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Operation {name} failed (attempt {attempt}/{attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                if on_retry is not None:
                    on_retry(attempt, e)
                await asyncio.sleep(delay)
                attempt += 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    name: str,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
    base_delay: float = BASE_RETRY_DELAY,
    on_retry: RetryCallback | None = None,
) -> T:
    """Run ``operation`` with exponential backoff (no jitter), capped at 30s."""
    policy = RetryPolicy(
        max_attempts=max_attempts or MAX_RETRY_ATTEMPTS,
        base_delay=base_delay or BASE_RETRY_DELAY,
        max_delay=MAX_RETRY_DELAY,
    )
    return await policy.run(operation, name, on_retry=on_retry)


def reconnect_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: JitterFunc | None = None,
) -> float:
    """
    Delay before a scheduled reconnect.

    ``base_delay * 2**attempt`` capped at ``max_delay``, then randomized
    within 80%-120%.

    Args:
        attempt: Reconnect attempt number (0-based)
        base_delay: Delay for the first reconnect, in seconds
        max_delay: Cap applied before jitter
        jitter: Override for the default 80%-120% jitter
    """
    policy = RetryPolicy(
        base_delay=base_delay,
        max_delay=max_delay,
        jitter=jitter or proportional_jitter(0.8, 1.2),
    )
    return policy.get_delay(attempt + 1)


def _discard_late_result(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Ignoring late failure of abandoned operation: {exc}")


async def with_timeout(awaitable: Awaitable[T], timeout: float, name: str) -> T:
    """
    Race ``awaitable`` against a timer.

    On expiry a retryable timeout MCPError is raised. The underlying
    operation keeps running; its eventual result or error is discarded.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _pending = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        # Caller cancelled; the operation keeps running unobserved
        task.add_done_callback(_discard_late_result)
        raise
    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_result)
    raise create_timeout_error(name, timeout)
