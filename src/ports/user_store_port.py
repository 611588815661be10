"""UserStorePort - CRUD over one store of user records.

Implemented twice: MySQLUserStore (relational, integer ids) and
RedisUserStore (key-value cluster, generated ids). Handlers depend on this
interface only, so the MySQL and Redis routes share one router factory.

Error contract (both adapters):
    NotFoundError    - no record with that id
    ConflictError    - email already used by another record
    StoreError       - any other store failure
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.shared.types import UserInput, UserRecord


class UserStorePort(ABC):
    """Port: user record persistence."""

    #: Short label used in logs and health output ("mysql" / "redis").
    name: str

    @abstractmethod
    async def list_all(self) -> list[UserRecord]:
        """Return every record, unfiltered and unpaginated."""

    @abstractmethod
    async def get(self, user_id: str) -> UserRecord:
        """Return one record.

        Raises:
            NotFoundError: If no record has this id.
        """

    @abstractmethod
    async def insert(self, data: UserInput) -> UserRecord:
        """Create a record and assign its id.

        Raises:
            ConflictError: If the email is already used.
        """

    @abstractmethod
    async def update(self, user_id: str, data: UserInput) -> UserRecord:
        """Overwrite the mutable fields of a record.

        Raises:
            NotFoundError: If no record has this id.
            ConflictError: If another record already uses the email.
        """

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        """Remove a record.

        Raises:
            NotFoundError: If no record has this id.
        """
