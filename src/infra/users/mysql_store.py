"""MySQL implementation of UserStorePort via SQLAlchemy.

- One statement per operation, no multi-statement transactions
- Email uniqueness enforced by the UNIQUE index (error 1062 -> ConflictError)
- Driver/connectivity failures surface as StoreError
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.infra.models import UserModel
from src.ports.user_store_port import UserStorePort
from src.shared.errors import ConflictError, NotFoundError, StoreError
from src.shared.types import UserRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from src.shared.types import UserInput

logger = logging.getLogger(__name__)

EMAIL_EXISTS_MESSAGE = "Email already exists"
_ER_DUP_ENTRY = 1062


def _is_duplicate_key(exc: IntegrityError) -> bool:
    args = getattr(exc.orig, "args", ())
    if args and args[0] == _ER_DUP_ENTRY:
        return True
    return "Duplicate entry" in str(exc.orig)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        if _is_duplicate_key(exc):
            raise ConflictError(EMAIL_EXISTS_MESSAGE) from exc
        logger.error("MySQL %s failed: %s", action, exc.orig)
        raise StoreError("mysql", "Database error") from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.error("MySQL %s failed: %s", action, exc)
        raise StoreError("mysql", "Database error") from exc


def _parse_id(user_id: int | str) -> int | None:
    if isinstance(user_id, int):
        return user_id
    return int(user_id) if user_id.isdigit() else None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _row_to_record(row: UserModel) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone or "",
        address=row.address or "",
        created_at=_as_utc(row.created_at),
    )


class MySQLUserStore(UserStorePort):
    """Relational store of user records (table `users`)."""

    name = "mysql"

    def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_all(self) -> list[UserRecord]:
        stmt = sa.select(UserModel).order_by(UserModel.id)
        with _translate_errors("list"):
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
        return [_row_to_record(row) for row in rows]

    async def get(self, user_id: int | str) -> UserRecord:
        pk = _parse_id(user_id)
        if pk is None:
            raise NotFoundError("User", str(user_id))

        stmt = sa.select(UserModel).where(UserModel.id == pk)
        with _translate_errors("get"):
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("User", str(user_id))
        return _row_to_record(row)

    async def insert(self, data: UserInput) -> UserRecord:
        model = UserModel(
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
        )
        with _translate_errors("insert"):
            async with self._session_factory() as session:
                session.add(model)
                await session.commit()
                # created_at comes from the server default
                await session.refresh(model)
        logger.info("MySQL user created: id=%s", model.id)
        return _row_to_record(model)

    async def update(self, user_id: int | str, data: UserInput) -> UserRecord:
        pk = _parse_id(user_id)
        if pk is None:
            raise NotFoundError("User", str(user_id))

        stmt = (
            sa.update(UserModel)
            .where(UserModel.id == pk)
            .values(
                name=data.name,
                email=data.email,
                phone=data.phone,
                address=data.address,
            )
        )
        with _translate_errors("update"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                if result.rowcount == 0:
                    raise NotFoundError("User", str(user_id))
                row = (
                    await session.execute(sa.select(UserModel).where(UserModel.id == pk))
                ).scalar_one_or_none()

        if row is None:
            # Deleted between the UPDATE and the re-read
            raise NotFoundError("User", str(user_id))
        return _row_to_record(row)

    async def delete(self, user_id: int | str) -> None:
        pk = _parse_id(user_id)
        if pk is None:
            raise NotFoundError("User", str(user_id))

        stmt = sa.delete(UserModel).where(UserModel.id == pk)
        with _translate_errors("delete"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        if result.rowcount == 0:
            raise NotFoundError("User", str(user_id))
        logger.info("MySQL user deleted: id=%s", pk)

    async def upsert_by_email(self, record: UserRecord) -> None:
        """Insert a record, or refresh name/phone/address of the row holding its email.

        The relational id is always assigned by MySQL; the record's own id is ignored.
        """
        values: dict[str, object] = {
            "name": record.name,
            "email": record.email,
            "phone": record.phone,
            "address": record.address,
        }
        if record.created_at is not None:
            values["created_at"] = record.created_at.astimezone(UTC).replace(tzinfo=None)

        stmt = mysql_insert(UserModel).values(**values)
        stmt = stmt.on_duplicate_key_update(
            name=stmt.inserted.name,
            phone=stmt.inserted.phone,
            address=stmt.inserted.address,
        )
        with _translate_errors("upsert"):
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
