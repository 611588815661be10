"""Bulk copy of user records between the MySQL and Redis stores.

Records are matched by email, never by id: MySQL ids are integers and
Redis ids are generated tokens. One failing record is logged and counted;
it never aborts the batch. Cluster readiness errors do abort, since no
further record could be written either.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from src.infra.users.redis_store import new_user_id
from src.shared.errors import ConflictError, StoreError

if TYPE_CHECKING:
    from src.infra.users.mysql_store import MySQLUserStore
    from src.infra.users.redis_store import RedisUserStore

logger = logging.getLogger(__name__)

# Per-record failures; anything else propagates to the handler
_RECORD_ERRORS = (ConflictError, StoreError)


@dataclass(frozen=True)
class TransferReport:
    message: str
    total: int
    success: int
    errors: int | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "message": self.message,
            "total": self.total,
            "success": self.success,
        }
        if self.errors is not None:
            body["errors"] = self.errors
        return body


class UserTransferService:
    """Copies records between stores.

    Args:
        mysql: Relational store (source or target).
        redis: Key-value store (source or target).
    """

    def __init__(self, *, mysql: MySQLUserStore, redis: RedisUserStore) -> None:
        self._mysql = mysql
        self._redis = redis

    async def copy_mysql_to_redis(self) -> TransferReport:
        """Write every MySQL row into Redis.

        A Redis record with the same email is overwritten in place; otherwise
        the row gets a new generated id. created_at is carried over.
        """
        rows = await self._mysql.list_all()
        existing = await self._redis.email_index()

        success = 0
        for row in rows:
            target = replace(row, id=existing.get(row.email) or new_user_id())
            try:
                await self._redis.save(target)
            except _RECORD_ERRORS as exc:
                logger.error("Copying MySQL user %s to Redis failed: %s", row.id, exc)
                continue
            existing[row.email] = str(target.id)
            success += 1

        logger.info("Copied %d/%d users from MySQL to Redis", success, len(rows))
        return TransferReport(
            message=f"Copied {success} users from MySQL to Redis",
            total=len(rows),
            success=success,
        )

    async def copy_redis_to_mysql(self) -> TransferReport:
        """Upsert every Redis record into MySQL by email."""
        records = await self._redis.list_all()

        success = errors = 0
        for record in records:
            if not record.name or not record.email:
                logger.error("Redis user %s lacks name or email; not copied", record.id)
                errors += 1
                continue
            try:
                await self._mysql.upsert_by_email(record)
            except _RECORD_ERRORS as exc:
                logger.error("Copying Redis user %s to MySQL failed: %s", record.id, exc)
                errors += 1
                continue
            success += 1

        logger.info("Copied %d/%d users from Redis to MySQL (%d errors)", success, len(records), errors)
        return TransferReport(
            message=f"Copied {success} users from Redis to MySQL",
            total=len(records),
            success=success,
            errors=errors,
        )
