"""Redis maintenance API.

- POST /api/redis/cleanup-duplicates -> cleanup report (503 unless READY)
- POST /api/redis/reconnect          -> force a reconnect, whatever the state
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.gateway.api.users import require_cluster_ready
from src.shared.errors import ClusterInitError

if TYPE_CHECKING:
    from src.infra.cache.cluster import RedisClusterAdapter
    from src.users.cleanup import DuplicateCleaner

logger = logging.getLogger(__name__)


def create_redis_admin_router(
    *,
    cleaner: DuplicateCleaner,
    cluster: RedisClusterAdapter,
) -> APIRouter:
    router = APIRouter(prefix="/api/redis", tags=["redis"])

    @router.post(
        "/cleanup-duplicates",
        dependencies=[Depends(require_cluster_ready(cluster))],
    )
    async def cleanup_duplicates() -> dict[str, Any]:
        report = await cleaner.run()
        return report.to_dict()

    @router.post("/reconnect", response_model=None)
    async def reconnect() -> dict[str, Any] | JSONResponse:
        try:
            await cluster.reconnect()
        except ClusterInitError as exc:
            logger.warning("Manual Redis reconnect failed: %s", exc)
            return JSONResponse(
                status_code=503,
                content={"error": str(exc), "state": cluster.state.value},
            )
        return {"status": "reconnected", "state": cluster.state.value}

    return router
