"""User CRUD API, mounted once per store.

- GET    {prefix}            -> every record
- GET    {prefix}/{user_id}  -> one record
- POST   {prefix}            -> create (201)
- PUT    {prefix}/{user_id}  -> overwrite name, email, phone, address
- DELETE {prefix}/{user_id}  -> remove

The MySQL and Redis routes differ only in the store they are given and, for
Redis, a readiness guard that answers 503 before any body validation.
"""

from __future__ import annotations

import logging
from datetime import datetime  # noqa: TC003 - needed at runtime by pydantic

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.ports.cluster_port import ClusterCommandPort  # noqa: TC001 - used at runtime
from src.ports.user_store_port import UserStorePort  # noqa: TC001 - used at runtime
from src.shared.types import UserInput, UserRecord

logger = logging.getLogger(__name__)

DELETED_MESSAGE = "User deleted successfully"


class UserPayload(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    def to_input(self) -> UserInput:
        return UserInput.from_payload(
            name=self.name,
            email=self.email,
            phone=self.phone,
            address=self.address,
        )


class UserResponse(BaseModel):
    id: int | str
    name: str
    email: str
    phone: str = ""
    address: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: UserRecord) -> UserResponse:
        return cls(
            id=record.id,
            name=record.name,
            email=record.email,
            phone=record.phone,
            address=record.address,
            created_at=record.created_at,
        )


class MessageResponse(BaseModel):
    message: str


def require_cluster_ready(cluster: ClusterCommandPort):  # noqa: ANN201
    """Dependency factory: 503 while the cluster adapter is not READY."""

    async def _check() -> None:
        cluster.ensure_ready()

    return _check


def create_user_router(
    *,
    prefix: str,
    store: UserStorePort,
    cluster: ClusterCommandPort | None = None,
) -> APIRouter:
    """Create a CRUD router over one store."""
    dependencies = [Depends(require_cluster_ready(cluster))] if cluster is not None else []
    router = APIRouter(prefix=prefix, tags=[store.name], dependencies=dependencies)

    @router.get("", response_model=list[UserResponse])
    async def list_users() -> list[UserResponse]:
        return [UserResponse.from_record(r) for r in await store.list_all()]

    @router.get("/{user_id}", response_model=UserResponse)
    async def get_user(user_id: str) -> UserResponse:
        return UserResponse.from_record(await store.get(user_id))

    @router.post("", response_model=UserResponse, status_code=201)
    async def create_user(body: UserPayload) -> UserResponse:
        record = await store.insert(body.to_input())
        return UserResponse.from_record(record)

    @router.put("/{user_id}", response_model=UserResponse)
    async def update_user(user_id: str, body: UserPayload) -> UserResponse:
        record = await store.update(user_id, body.to_input())
        return UserResponse.from_record(record)

    @router.delete("/{user_id}", response_model=MessageResponse)
    async def delete_user(user_id: str) -> MessageResponse:
        await store.delete(user_id)
        return MessageResponse(message=DELETED_MESSAGE)

    return router
