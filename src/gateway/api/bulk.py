"""Bulk copy API between the two stores.

- POST /api/mysql-to-redis -> {message, total, success}
- POST /api/redis-to-mysql -> {message, total, success, errors}

Both need the Redis cluster; they answer 503 while it is not READY.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends

from src.gateway.api.users import require_cluster_ready

if TYPE_CHECKING:
    from src.ports.cluster_port import ClusterCommandPort
    from src.users.transfer import UserTransferService


def create_bulk_router(
    *,
    transfer: UserTransferService,
    cluster: ClusterCommandPort,
) -> APIRouter:
    router = APIRouter(
        prefix="/api",
        tags=["bulk"],
        dependencies=[Depends(require_cluster_ready(cluster))],
    )

    @router.post("/mysql-to-redis")
    async def mysql_to_redis() -> dict[str, Any]:
        report = await transfer.copy_mysql_to_redis()
        return report.to_dict()

    @router.post("/redis-to-mysql")
    async def redis_to_mysql() -> dict[str, Any]:
        report = await transfer.copy_redis_to_mysql()
        return report.to_dict()

    return router
