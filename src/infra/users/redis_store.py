"""Redis Cluster implementation of UserStorePort.

Layout:
    user:<id>           hash with name, email, phone, address, created_at
    user-email:<email>  reservation key holding the id that owns the email

Email uniqueness is checked twice: a cross-shard scan of every user hash
(covers records written before reservations existed) and an atomic SET NX
on the reservation key (closes the scan-then-write race). A record's hash is
always written before its reservation is claimed, so a reservation whose
holder has no hash, or a hash with another email, is stale and may be taken
over.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from redis.exceptions import RedisError

from src.infra.users.mysql_store import EMAIL_EXISTS_MESSAGE
from src.ports.user_store_port import UserStorePort
from src.shared.errors import ConflictError, NotFoundError, StoreError
from src.shared.types import UserRecord, parse_timestamp, utcnow

if TYPE_CHECKING:
    from src.ports.cluster_port import ClusterCommandPort
    from src.shared.types import UserInput

logger = logging.getLogger(__name__)

USER_KEY_PATTERN = "user:*"
_USER_KEY_PREFIX = "user:"
_EMAIL_KEY_PREFIX = "user-email:"


def user_key(user_id: int | str) -> str:
    return f"{_USER_KEY_PREFIX}{user_id}"


def email_key(email: str) -> str:
    return f"{_EMAIL_KEY_PREFIX}{email}"


def new_user_id() -> str:
    return str(uuid4())


def age_key(record: UserRecord) -> tuple[datetime, str]:
    # Records without a timestamp sort last
    return (record.created_at or datetime.max.replace(tzinfo=UTC), str(record.id))


def _record_to_hash(record: UserRecord) -> dict[str, str]:
    created_at = record.created_at or utcnow()
    return {
        "name": record.name,
        "email": record.email,
        "phone": record.phone,
        "address": record.address,
        "created_at": created_at.isoformat(),
    }


def _hash_to_record(user_id: str, fields: dict[str, str]) -> UserRecord | None:
    if not fields:
        return None
    return UserRecord(
        id=user_id,
        name=fields.get("name", ""),
        email=fields.get("email", ""),
        phone=fields.get("phone", ""),
        address=fields.get("address", ""),
        created_at=parse_timestamp(fields.get("created_at")),
    )


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    # Cluster readiness errors are UserBridgeErrors and pass through untouched
    try:
        yield
    except RedisError as exc:
        logger.error("Redis %s failed: %s", action, exc)
        raise StoreError("redis", "Redis error") from exc


class RedisUserStore(UserStorePort):
    """User records stored as hashes across the shards of a Redis Cluster."""

    name = "redis"

    def __init__(self, *, cluster: ClusterCommandPort) -> None:
        self._cluster = cluster

    # -- UserStorePort --

    async def list_all(self) -> list[UserRecord]:
        return await self.load(await self.user_keys())

    async def user_keys(self) -> list[str]:
        with _translate_errors("list"):
            return await self._cluster.scan_pattern(USER_KEY_PATTERN)

    async def load(self, keys: list[str]) -> list[UserRecord]:
        """Records behind `keys`; keys that are empty or not user hashes are skipped."""
        records: list[UserRecord] = []
        for key in keys:
            user_id = key[len(_USER_KEY_PREFIX):]
            try:
                fields = await self._cluster.hgetall_record(key)
            except RedisError as exc:
                logger.warning("Skipping Redis key %s: %s", key, exc)
                continue
            record = _hash_to_record(user_id, fields)
            if record is None:
                logger.warning("Skipping empty Redis hash %s", key)
                continue
            records.append(record)
        return records

    async def get(self, user_id: str) -> UserRecord:
        with _translate_errors("get"):
            fields = await self._cluster.hgetall_record(user_key(user_id))
        record = _hash_to_record(str(user_id), fields)
        if record is None:
            raise NotFoundError("User", str(user_id))
        return record

    async def insert(self, data: UserInput) -> UserRecord:
        if await self._find_email_owner(data.email) is not None:
            raise ConflictError(EMAIL_EXISTS_MESSAGE)

        record = UserRecord(
            id=new_user_id(),
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
            created_at=utcnow(),
        )
        await self.save(record)
        logger.info("Redis user created: id=%s", record.id)
        return record

    async def update(self, user_id: str, data: UserInput) -> UserRecord:
        current = await self.get(user_id)
        if await self._find_email_owner(data.email, exclude_id=current.id) is not None:
            raise ConflictError(EMAIL_EXISTS_MESSAGE)

        updated = current.with_input(data)
        await self._write(updated)
        if updated.email != current.email:
            try:
                await self._reserve_email(updated.email, str(updated.id))
            except ConflictError:
                await self._write(current)
                raise
            await self._release_email(current.email, str(current.id))
        return updated

    async def delete(self, user_id: str) -> None:
        with _translate_errors("delete"):
            fields = await self._cluster.hgetall_record(user_key(user_id))
            if not fields:
                raise NotFoundError("User", str(user_id))
            await self._cluster.delete_key(user_key(user_id))
        email = fields.get("email")
        if email:
            await self._release_email(email, str(user_id))
        logger.info("Redis user deleted: id=%s", user_id)

    # -- Bulk helpers (copy and cleanup) --

    async def save(self, record: UserRecord) -> None:
        """Write a full record under its own id and claim its email.

        Raises:
            ConflictError: If a live record with another id owns the email.
                A hash created by this call is removed again.
        """
        key = user_key(record.id)
        with _translate_errors("save"):
            existed = await self._cluster.exists_key(key)
        await self._write(record)
        try:
            await self._reserve_email(record.email, str(record.id))
        except ConflictError:
            if not existed:
                await self._cluster.delete_key(key)
            raise

    async def remove(self, record: UserRecord) -> None:
        """Delete a record known to exist; missing keys are not an error."""
        with _translate_errors("remove"):
            await self._cluster.delete_key(user_key(record.id))
        await self._release_email(record.email, str(record.id))

    async def reassign_id(self, record: UserRecord) -> UserRecord:
        """Move a record to a freshly generated id, keeping every other field."""
        moved = replace(record, id=new_user_id())
        await self._write(moved)
        with _translate_errors("reassign"):
            await self._cluster.delete_key(user_key(record.id))
        await self._release_email(record.email, str(record.id))
        await self._reserve_email(moved.email, str(moved.id))
        return moved

    async def claim_email(self, record: UserRecord) -> None:
        """Point the email reservation at this record (taking over stale holders)."""
        await self._reserve_email(record.email, str(record.id))

    async def email_index(self) -> dict[str, str]:
        """Map each email to the id of its oldest record, from one full scan."""
        index: dict[str, str] = {}
        for record in sorted(await self.list_all(), key=age_key):
            index.setdefault(record.email, str(record.id))
        return index

    # -- Internals --

    async def _write(self, record: UserRecord) -> None:
        with _translate_errors("write"):
            await self._cluster.hset_record(user_key(record.id), _record_to_hash(record))

    async def _find_email_owner(self, email: str, *, exclude_id: int | str | None = None) -> str | None:
        for record in await self.list_all():
            if record.email == email and str(record.id) != str(exclude_id):
                return str(record.id)
        return None

    async def _holds_email(self, holder_id: str, email: str) -> bool:
        with _translate_errors("reservation check"):
            fields = await self._cluster.hgetall_record(user_key(holder_id))
        return fields.get("email") == email

    async def _reserve_email(self, email: str, user_id: str) -> None:
        key = email_key(email)
        with _translate_errors("reserve"):
            if await self._cluster.set_if_absent(key, user_id):
                return
            holder = await self._cluster.get_value(key)
        if holder == user_id:
            return
        if holder is None:
            # Released between SET NX and GET; try once more
            with _translate_errors("reserve"):
                if await self._cluster.set_if_absent(key, user_id):
                    return
            raise ConflictError(EMAIL_EXISTS_MESSAGE)
        if await self._holds_email(holder, email):
            raise ConflictError(EMAIL_EXISTS_MESSAGE)

        with _translate_errors("reserve"):
            taken = await self._cluster.compare_and_set(key, holder, user_id)
        if not taken:
            raise ConflictError(EMAIL_EXISTS_MESSAGE)
        logger.info("Took over stale email reservation from id=%s", holder)

    async def _release_email(self, email: str, user_id: str) -> None:
        with _translate_errors("release"):
            await self._cluster.compare_and_delete(email_key(email), user_id)
