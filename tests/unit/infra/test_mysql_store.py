"""Unit tests for MySQLUserStore against FakeAsyncSession."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.dialects import mysql
from sqlalchemy.exc import IntegrityError, OperationalError

from src.infra.models import UserModel
from src.infra.users.mysql_store import MySQLUserStore
from src.shared.errors import ConflictError, NotFoundError, StoreError
from src.shared.types import UserInput, UserRecord
from tests.fakes import FakeAsyncSession, FakeResult, FakeSessionFactory

_CREATED = datetime(2024, 3, 1, 9, 30)


def _row(user_id: int = 1, email: str = "john@example.com") -> UserModel:
    return UserModel(
        id=user_id,
        name="John Doe",
        email=email,
        phone="555-1234",
        address=None,
        created_at=_CREATED,
    )


def _duplicate() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO users ...",
        {},
        Exception(1062, "Duplicate entry 'john@example.com' for key 'users.email'"),
    )


@pytest.fixture()
def session() -> FakeAsyncSession:
    return FakeAsyncSession()


@pytest.fixture()
def store(session: FakeAsyncSession) -> MySQLUserStore:
    return MySQLUserStore(session_factory=FakeSessionFactory(session))


@pytest.mark.unit
class TestRead:
    async def test_list_all(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.set_scalars_result([_row(1), _row(2, "jane@example.com")])
        records = await store.list_all()
        assert [r.id for r in records] == [1, 2]
        assert records[0].address == ""
        assert records[0].created_at == _CREATED.replace(tzinfo=UTC)

    async def test_get(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.set_execute_results([FakeResult(row=_row(5))])
        record = await store.get("5")
        assert record.id == 5
        assert record.email == "john@example.com"

    async def test_get_missing(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        with pytest.raises(NotFoundError, match="User not found"):
            await store.get("99")

    async def test_non_numeric_id_is_not_found(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        with pytest.raises(NotFoundError):
            await store.get("abc")
        assert session.execute_calls == []

    async def test_connection_lost(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.execute_error = OperationalError("SELECT", {}, ConnectionResetError("gone"))
        with pytest.raises(StoreError, match="Database error"):
            await store.list_all()


@pytest.mark.unit
class TestInsert:
    async def test_assigns_id_and_created_at(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        record = await store.insert(UserInput("John Doe", "john@example.com", "555-1234"))
        assert record.id == 1
        assert record.created_at is not None
        assert session.commit_count == 1
        assert len(session.refreshed) == 1

    async def test_duplicate_email(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.commit_error = _duplicate()
        with pytest.raises(ConflictError, match="Email already exists"):
            await store.insert(UserInput("John Doe", "john@example.com"))

    async def test_other_integrity_error(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.commit_error = IntegrityError("INSERT", {}, Exception(1048, "Column 'name' cannot be null"))
        with pytest.raises(StoreError):
            await store.insert(UserInput("John Doe", "john@example.com"))


@pytest.mark.unit
class TestUpdate:
    async def test_overwrites_fields(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        updated = _row(3, "new@example.com")
        session.set_execute_results([FakeResult(rowcount=1), FakeResult(row=updated)])
        record = await store.update("3", UserInput("John Doe", "new@example.com"))
        assert record.email == "new@example.com"
        assert session.commit_count == 1

    async def test_missing_row(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.set_execute_results([FakeResult(rowcount=0)])
        with pytest.raises(NotFoundError):
            await store.update("3", UserInput("John Doe", "john@example.com"))

    async def test_email_collision(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.execute_error = _duplicate()
        with pytest.raises(ConflictError):
            await store.update("3", UserInput("John Doe", "jane@example.com"))


@pytest.mark.unit
class TestDelete:
    async def test_deletes(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.set_execute_results([FakeResult(rowcount=1)])
        await store.delete("4")
        assert session.commit_count == 1

    async def test_missing_row(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.set_execute_results([FakeResult(rowcount=0)])
        with pytest.raises(NotFoundError):
            await store.delete("4")


@pytest.mark.unit
class TestUpsertByEmail:
    async def test_on_duplicate_key_updates_profile_fields(
        self, session: FakeAsyncSession, store: MySQLUserStore
    ) -> None:
        record = UserRecord(
            id="9b2f",
            name="Jane",
            email="jane@example.com",
            phone="1",
            address="here",
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
        await store.upsert_by_email(record)

        sql = str(session.execute_calls[0].compile(dialect=mysql.dialect()))
        assert "ON DUPLICATE KEY UPDATE" in sql
        update_clause = sql.split("ON DUPLICATE KEY UPDATE", 1)[1]
        for column in ("name", "phone", "address"):
            assert column in update_clause
        assert "email" not in update_clause
        assert session.commit_count == 1

    async def test_store_error(self, session: FakeAsyncSession, store: MySQLUserStore) -> None:
        session.execute_error = OperationalError("INSERT", {}, ConnectionResetError("gone"))
        with pytest.raises(StoreError):
            await store.upsert_by_email(UserRecord(id="x", name="a", email="a@b.c"))
