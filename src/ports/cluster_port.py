"""ClusterCommandPort - resilient command interface to a sharded KV cluster.

The adapter behind this port owns the connection lifecycle (discovery,
readiness, reconnect). Consumers only see `ready` and `execute`; every
command they issue goes through `execute` so routing errors are retried
in one place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, TypeVar

from src.shared.errors import ClusterNotReadyError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

# Single-key scripts, so they route to one shard
CAS_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    redis.call("SET", KEYS[1], ARGV[2])
    return 1
end
return 0
"""

CAD_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class ClusterCommandPort(ABC):
    """Port: key-value cluster commands."""

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True only while the adapter accepts commands."""

    def ensure_ready(self) -> None:
        """Raise ClusterNotReadyError unless commands are accepted."""
        if not self.ready:
            raise ClusterNotReadyError("not_ready")

    @abstractmethod
    async def execute(self, op: Callable[[Any], Awaitable[T]]) -> T:
        """Run `op(client)` against the live cluster connection.

        Raises:
            ClusterNotReadyError: If the adapter is not ready.
            ClusterUnavailableError: If topology errors persist after retries.
        """

    @abstractmethod
    async def scan_pattern(self, pattern: str) -> list[str]:
        """Return every key matching a glob pattern, across all shards."""

    async def hset_record(self, key: str, mapping: dict[str, str]) -> None:
        await self.execute(lambda c: c.hset(key, mapping=mapping))

    async def hgetall_record(self, key: str) -> dict[str, str]:
        return await self.execute(lambda c: c.hgetall(key))

    async def exists_key(self, key: str) -> bool:
        return bool(await self.execute(lambda c: c.exists(key)))

    async def delete_key(self, key: str) -> int:
        return int(await self.execute(lambda c: c.delete(key)))

    async def set_if_absent(self, key: str, value: str) -> bool:
        """SET NX; True when the key was created."""
        return bool(await self.execute(lambda c: c.set(key, value, nx=True)))

    async def get_value(self, key: str) -> str | None:
        return await self.execute(lambda c: c.get(key))

    async def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        """Atomically replace `key` only while it still holds `expected`."""
        return bool(await self.execute(lambda c: c.eval(CAS_SCRIPT, 1, key, expected, value)))

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete `key` only while it still holds `expected`."""
        return bool(await self.execute(lambda c: c.eval(CAD_SCRIPT, 1, key, expected)))
