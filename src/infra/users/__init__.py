"""User store adapters implementing UserStorePort (MySQL and Redis Cluster)."""

from src.infra.users.mysql_store import MySQLUserStore
from src.infra.users.redis_store import RedisUserStore

__all__ = ["MySQLUserStore", "RedisUserStore"]
