#!/usr/bin/env python3
"""Seed the MySQL users table with sample records.

Usage:
    python scripts/seed_users.py

Creates the table when absent, then inserts each sample user whose email
is not taken yet. Safe to run repeatedly.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.infra.db import create_engine_from_settings, create_session_factory, ensure_schema  # noqa: E402
from src.infra.users.mysql_store import MySQLUserStore  # noqa: E402
from src.shared.config import load_settings  # noqa: E402
from src.shared.errors import ConflictError  # noqa: E402
from src.shared.types import UserInput  # noqa: E402

SAMPLE_USERS = (
    UserInput("John Doe", "john@example.com", "555-1234", "123 Main St, Anytown"),
    UserInput("Jane Smith", "jane@example.com", "555-5678", "456 Oak Ave, Somewhere"),
    UserInput("Alice Johnson", "alice@example.com", "555-9012", "789 Pine Rd, Nowhere"),
)


async def seed(store: MySQLUserStore) -> list[str]:
    """Insert the sample users; return the emails actually created."""
    created: list[str] = []
    for user in SAMPLE_USERS:
        try:
            await store.insert(user)
        except ConflictError:
            print(f"Already present: {user.email}")
            continue
        created.append(user.email)
        print(f"Created: {user.name} <{user.email}>")
    return created


async def main() -> None:
    load_dotenv()
    settings = load_settings()
    engine = create_engine_from_settings(settings.mysql)
    try:
        await ensure_schema(engine)
        created = await seed(MySQLUserStore(session_factory=create_session_factory(engine)))
        print(f"Seeded {len(created)} of {len(SAMPLE_USERS)} sample users")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
