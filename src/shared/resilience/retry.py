"""Retry with exponential backoff.

- Exponential backoff with a cap: base_delay * multiplier**attempt
- Optional full jitter so concurrent callers do not reconnect in lockstep
- Only retry on retriable exceptions (ConnectionError, TimeoutError, OSError)
- Non-retriable exceptions propagate immediately

Used for MySQL schema bootstrap and for the Redis cluster reconnect cycles.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Default retriable exception types
_DEFAULT_RETRIABLE = (ConnectionError, TimeoutError, OSError)


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 0.1
    multiplier: float = 2.0
    max_delay: float = 5.0
    jitter: bool = False

    def delay_for_attempt(self, attempt: int) -> float:
        """Calculate delay for a given retry attempt (0-indexed).

        With jitter enabled the delay is drawn uniformly from [delay/2, delay].
        """
        delay = min(self.base_delay * (self.multiplier**attempt), self.max_delay)
        if self.jitter:
            return random.uniform(delay / 2, delay)  # noqa: S311
        return delay


async def retry_with_backoff(  # noqa: UP047
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    retriable_exceptions: tuple[type[BaseException], ...] = _DEFAULT_RETRIABLE,
    label: str = "operation",
) -> T:
    """Execute an async callable with retry and exponential backoff.

    Args:
        fn: Async callable (no arguments) to execute.
        policy: Retry policy configuration.
        retriable_exceptions: Exception types that trigger a retry.
        label: Name used in log lines.

    Returns:
        Result of fn().

    Raises:
        RetryExhaustedError: If all retries are exhausted.
        Exception: Non-retriable exceptions propagate immediately.
    """
    p = policy or RetryPolicy()
    last_error: Exception | None = None

    for attempt in range(1 + p.max_retries):
        try:
            return await fn()
        except retriable_exceptions as exc:
            last_error = exc  # type: ignore[assignment]
            if attempt < p.max_retries:
                delay = p.delay_for_attempt(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    label,
                    attempt + 1,
                    1 + p.max_retries,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

    assert last_error is not None
    raise RetryExhaustedError(attempts=1 + p.max_retries, last_error=last_error)
