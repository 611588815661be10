"""Tests for the Redis maintenance endpoints (cleanup and reconnect)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from src.gateway.api.redis_admin import create_redis_admin_router
from src.gateway.app import create_app
from src.infra.cache.cluster import ClusterState, RedisClusterAdapter
from src.infra.users.redis_store import RedisUserStore
from src.users.cleanup import DuplicateCleaner
from tests.fakes import FakeClusterBackend, fast_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


def _app(cluster: RedisClusterAdapter) -> AsyncClient:
    app = create_app()
    cleaner = DuplicateCleaner(redis=RedisUserStore(cluster=cluster))
    app.include_router(create_redis_admin_router(cleaner=cleaner, cluster=cluster))
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture()
async def client(ready_cluster: RedisClusterAdapter) -> AsyncGenerator[AsyncClient, None]:
    async with _app(ready_cluster) as c:
        yield c


@pytest.mark.unit
class TestCleanupDuplicates:
    async def test_report(self, client: AsyncClient, cluster_backend: FakeClusterBackend) -> None:
        cluster_backend.put_hash(
            "user:a", {"name": "A", "email": "d@example.com", "created_at": "2024-02-01T00:00:00+00:00"}
        )
        cluster_backend.put_hash(
            "user:b", {"name": "B", "email": "d@example.com", "created_at": "2024-01-01T00:00:00+00:00"}
        )

        resp = await client.post("/api/redis/cleanup-duplicates")

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Cleanup completed"
        assert body["duplicatesRemoved"] == 1
        assert body["removed"] == ["a"]
        assert body["idsReassigned"] == 0
        assert body["totalProcessed"] == 2

    async def test_not_ready(self, client: AsyncClient, ready_cluster: RedisClusterAdapter) -> None:
        await ready_cluster.close()
        resp = await client.post("/api/redis/cleanup-duplicates")
        assert resp.status_code == 503


@pytest.mark.unit
class TestReconnect:
    async def test_from_ready(self, client: AsyncClient, ready_cluster: RedisClusterAdapter) -> None:
        generation = ready_cluster.generation
        resp = await client.post("/api/redis/reconnect")
        assert resp.status_code == 200
        assert resp.json() == {"status": "reconnected", "state": "ready"}
        assert ready_cluster.generation == generation + 1

    async def test_from_failed_runs_full_initialisation(self, cluster_backend: FakeClusterBackend) -> None:
        cluster = RedisClusterAdapter(
            fast_settings(auto_reconnect=False),
            cluster_factory=cluster_backend.cluster_factory,
            node_factory=cluster_backend.node_factory,
        )
        cluster_backend.down_seeds = {"redis-node-0:6379", "redis-node-1:6379", "redis-node-2:6379"}
        async with _app(cluster) as client:
            failed = await client.post("/api/redis/reconnect")
            assert failed.status_code == 503
            assert failed.json()["state"] == "failed"
            assert "Could not initialize Redis Cluster" in failed.json()["error"]
            assert cluster.state is ClusterState.FAILED

            cluster_backend.down_seeds = set()
            resp = await client.post("/api/redis/reconnect")
        try:
            assert resp.status_code == 200
            assert resp.json()["state"] == "ready"
        finally:
            await cluster.close()
