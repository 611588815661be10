"""Health API.

GET /api/health always answers 200; the body reports each backend so the
front-end can show which store is usable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.infra.cache.cluster import RedisClusterAdapter


class NodeStatus(BaseModel):
    host: str
    port: int
    status: str
    cluster_state: str | None = None


class HealthResponse(BaseModel):
    status: str
    mysql: str
    redis_cluster: str
    redis_state: str
    redis_generation: int
    redis_last_error: str
    redis_nodes: list[NodeStatus]


def _connected(flag: bool) -> str:
    return "connected" if flag else "disconnected"


def create_health_router(
    *,
    mysql_ping: Callable[[], Awaitable[bool]],
    cluster: RedisClusterAdapter,
) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/health", response_model=HealthResponse)
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "mysql": _connected(await mysql_ping()),
            "redis_cluster": _connected(cluster.ready),
            "redis_state": cluster.state.value,
            "redis_generation": cluster.generation,
            "redis_last_error": cluster.last_error,
            "redis_nodes": cluster.node_statuses(),
        }

    return router
