"""Create users table.

Same shape as the table ensure_schema() creates at startup. When Alembic
runs first, the startup create_all finds the table and does nothing.

Revision ID: 001_users
Revises: None
Create Date: 2026-10-17

Rollback: alembic downgrade base
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "001_users"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )


def downgrade() -> None:
    op.drop_table("users")
