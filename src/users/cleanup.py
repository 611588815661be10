"""Duplicate-email cleanup for the Redis store.

Per email the oldest record (created_at, then id) is kept and the others are
deleted. A kept record whose id is all digits (an id copied from MySQL or
generated from a timestamp by older releases) is moved to a fresh id.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from src.infra.users.redis_store import age_key
from src.shared.errors import ConflictError, StoreError

if TYPE_CHECKING:
    from src.infra.users.redis_store import RedisUserStore
    from src.shared.types import UserRecord

logger = logging.getLogger(__name__)

_RECORD_ERRORS = (ConflictError, StoreError)


def is_legacy_id(user_id: int | str) -> bool:
    return str(user_id).isdigit()


@dataclass
class CleanupReport:
    total_processed: int = 0
    removed: list[str] = field(default_factory=list)
    reassigned: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Cleanup completed",
            "duplicatesRemoved": len(self.removed),
            "idsReassigned": len(self.reassigned),
            "totalProcessed": self.total_processed,
            "removed": self.removed,
            "reassigned": self.reassigned,
        }


class DuplicateCleaner:
    def __init__(self, *, redis: RedisUserStore) -> None:
        self._redis = redis

    async def run(self) -> CleanupReport:
        keys = await self._redis.user_keys()
        records = await self._redis.load(keys)
        report = CleanupReport(total_processed=len(keys))

        by_email: dict[str, list[UserRecord]] = defaultdict(list)
        for record in records:
            by_email[record.email].append(record)

        for email, group in by_email.items():
            keep, *duplicates = sorted(group, key=age_key)

            for duplicate in duplicates:
                try:
                    await self._redis.remove(duplicate)
                except _RECORD_ERRORS as exc:
                    logger.error("Removing duplicate %s failed: %s", duplicate.id, exc)
                    continue
                report.removed.append(str(duplicate.id))

            try:
                if is_legacy_id(keep.id):
                    moved = await self._redis.reassign_id(keep)
                    report.reassigned.append({"old_id": str(keep.id), "new_id": str(moved.id)})
                else:
                    await self._redis.claim_email(keep)
            except _RECORD_ERRORS as exc:
                logger.error("Normalising record %s (%s) failed: %s", keep.id, email, exc)

        logger.info(
            "Redis cleanup: %d keys, %d duplicates removed, %d ids reassigned",
            report.total_processed,
            len(report.removed),
            len(report.reassigned),
        )
        return report
