"""Seed-node discovery and slot-coverage validation for a Redis Cluster.

Each configured seed is probed with its own short-lived standalone client:
- PING for liveness
- CLUSTER INFO for reported health and slot assignment

A seed with cluster support disabled answers PING but cannot vouch for slot
coverage; it is reported as live, not cluster-aware.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError, ResponseError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from src.shared.config import NodeAddress

logger = logging.getLogger(__name__)

SLOT_COUNT = 16384


class ClusterBootstrapError(Exception):
    """Discovery or connection setup did not succeed; the attempt may be retried."""


@dataclass(frozen=True)
class SeedStatus:
    """What one seed node reported during the last discovery round."""

    node: NodeAddress
    reachable: bool
    cluster_enabled: bool = False
    cluster_state: str = ""
    slots_assigned: int = 0
    slots_ok: int = 0
    known_nodes: int = 0
    error: str = ""

    @property
    def slots_covered(self) -> bool:
        return (
            self.cluster_enabled
            and self.cluster_state == "ok"
            and self.slots_assigned == SLOT_COUNT
            and self.slots_ok == SLOT_COUNT
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.node.host,
            "port": self.node.port,
            "status": "connected" if self.reachable else "disconnected",
            "cluster_state": self.cluster_state or None,
        }


@dataclass(frozen=True)
class DiscoveryReport:
    seeds: tuple[SeedStatus, ...]

    @property
    def live(self) -> list[SeedStatus]:
        return [s for s in self.seeds if s.reachable]

    @property
    def cluster_aware(self) -> list[SeedStatus]:
        return [s for s in self.live if s.cluster_enabled]

    @property
    def slots_covered(self) -> bool:
        """True when every live cluster-aware seed reports full, healthy coverage."""
        aware = self.cluster_aware
        return bool(aware) and all(s.slots_covered for s in aware)

    def summary(self) -> str:
        return ", ".join(
            f"{s.node.name}={'down' if not s.reachable else s.cluster_state or 'standalone'}"
            f"({s.slots_ok}/{SLOT_COUNT})"
            for s in self.seeds
        )


def parse_cluster_info(raw: Any) -> dict[str, str]:
    """Normalise a CLUSTER INFO reply.

    redis-py may hand back an already-parsed dict or the raw `key:value` text
    depending on client type and response callbacks.
    """
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    info: dict[str, str] = {}
    for line in str(raw or "").splitlines():
        key, sep, value = line.strip().partition(":")
        if sep:
            info[key] = value
    return info


def _as_int(info: Mapping[str, str], key: str) -> int:
    try:
        return int(info.get(key, 0))
    except ValueError:
        return 0


async def probe_seed(
    node: NodeAddress,
    client_factory: Callable[[NodeAddress], Any],
    *,
    timeout: float,
) -> SeedStatus:
    """Probe one seed node; never raises for network failures."""
    client = client_factory(node)
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
        try:
            raw = await asyncio.wait_for(client.execute_command("CLUSTER INFO"), timeout=timeout)
        except ResponseError as exc:
            if "cluster support disabled" in str(exc).lower():
                return SeedStatus(node=node, reachable=True, cluster_enabled=False)
            raise
        info = parse_cluster_info(raw)
        return SeedStatus(
            node=node,
            reachable=True,
            cluster_enabled=True,
            cluster_state=info.get("cluster_state", ""),
            slots_assigned=_as_int(info, "cluster_slots_assigned"),
            slots_ok=_as_int(info, "cluster_slots_ok"),
            known_nodes=_as_int(info, "cluster_known_nodes"),
        )
    except (RedisError, OSError, TimeoutError) as exc:
        logger.debug("Seed %s probe failed: %s", node.name, exc)
        return SeedStatus(node=node, reachable=False, error=str(exc) or type(exc).__name__)
    finally:
        try:
            await client.aclose()
        except (RedisError, OSError):
            logger.debug("Closing probe client for %s failed", node.name, exc_info=True)


async def discover(
    seeds: Sequence[NodeAddress],
    client_factory: Callable[[NodeAddress], Any],
    *,
    timeout: float,
) -> DiscoveryReport:
    """Probe every seed concurrently."""
    statuses = await asyncio.gather(
        *(probe_seed(node, client_factory, timeout=timeout) for node in seeds)
    )
    return DiscoveryReport(seeds=tuple(statuses))
