"""Shared Fake adapters for testing without unittest.mock.

Real Python classes with preset behaviour, no AsyncMock/MagicMock:
- session: SQLAlchemy async session for MySQLUserStore
- redis_cluster: servers and clients for RedisClusterAdapter
- stores: in-memory UserStorePort for router and service tests
"""

from tests.fakes.redis_cluster import FakeClusterBackend, fast_settings
from tests.fakes.session import (
    FakeAsyncSession,
    FakeResult,
    FakeScalarsResult,
    FakeSessionFactory,
)
from tests.fakes.stores import InMemoryUserStore

__all__ = [
    "FakeAsyncSession",
    "FakeClusterBackend",
    "FakeResult",
    "FakeScalarsResult",
    "FakeSessionFactory",
    "InMemoryUserStore",
    "fast_settings",
]
