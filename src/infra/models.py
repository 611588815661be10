"""SQLAlchemy ORM models for userbridge.

Maps to migrations/versions/001_create_users_table.py. The same metadata is
used by ensure_schema() to create the table at startup when it is absent.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 -- SQLAlchemy resolves Mapped[] annotations at runtime

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all userbridge ORM models."""


class UserModel(Base):
    """Relational user row. `email` is unique; `created_at` is set by the server."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.TIMESTAMP(),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )
