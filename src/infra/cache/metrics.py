"""Prometheus metrics for the Redis cluster adapter.

- State: one gauge sample per ClusterState, 1 for the current state
- Retries: command retry cycles after topology errors
- Reconnects: reconnect attempts by outcome
- Skipped nodes: primaries left out of a cross-shard scan
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

CLUSTER_STATE = Gauge(
    "redis_cluster_adapter_state",
    "Current state of the Redis cluster adapter (1 = active state)",
    ["state"],
)

COMMAND_RETRIES = Counter(
    "redis_cluster_command_retries_total",
    "Command retry cycles triggered by topology or transport errors",
)

RECONNECTS = Counter(
    "redis_cluster_reconnects_total",
    "Reconnect attempts of the Redis cluster adapter",
    ["outcome"],
)

SCAN_SKIPPED_NODES = Counter(
    "redis_cluster_scan_skipped_nodes_total",
    "Primary nodes skipped during a cross-shard scan",
)
