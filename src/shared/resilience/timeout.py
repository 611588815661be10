"""Timeout wrapper for network operations.

Wraps a coroutine with asyncio.wait_for and converts the timeout into
PortTimeoutError, which the cluster adapter treats as a transport error.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from src.shared.errors import PortTimeoutError

if TYPE_CHECKING:
    from collections.abc import Coroutine

T = TypeVar("T")

_DEFAULT_TIMEOUT = 10.0


async def execute_with_timeout(  # noqa: UP047
    coro: Coroutine[Any, Any, T],
    timeout_seconds: float = _DEFAULT_TIMEOUT,
    *,
    port_name: str = "redis_cluster",
) -> T:
    """Execute a coroutine with a timeout.

    Raises PortTimeoutError if the coroutine doesn't complete
    within timeout_seconds.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except TimeoutError:
        raise PortTimeoutError(port_name, int(timeout_seconds * 1000)) from None
