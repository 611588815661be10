"""Root conftest - shared fixtures for all test layers.

Markers:
    @pytest.mark.unit        - No external deps (fakes only)
    @pytest.mark.integration - Needs running MySQL / Redis Cluster
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from src.infra.cache.cluster import RedisClusterAdapter
from src.infra.users.redis_store import RedisUserStore
from tests.fakes import FakeClusterBackend, InMemoryUserStore, fast_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@pytest.fixture
def cluster_backend() -> FakeClusterBackend:
    return FakeClusterBackend()


@pytest.fixture
async def ready_cluster(cluster_backend: FakeClusterBackend) -> AsyncGenerator[RedisClusterAdapter, None]:
    """Adapter already READY against the fake backend; monitor and auto-reconnect off."""
    adapter = RedisClusterAdapter(
        fast_settings(auto_reconnect=False),
        cluster_factory=cluster_backend.cluster_factory,
        node_factory=cluster_backend.node_factory,
    )
    await adapter.become_ready()
    yield adapter
    await adapter.close()


@pytest.fixture
def redis_users(ready_cluster: RedisClusterAdapter) -> RedisUserStore:
    return RedisUserStore(cluster=ready_cluster)


@pytest.fixture
def mysql_users() -> InMemoryUserStore:
    return InMemoryUserStore()
