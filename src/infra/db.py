"""Async database engine, session factory and schema bootstrap.

Provides:
- create_db_engine(): AsyncEngine factory (aiomysql) with a bounded pool
- create_session_factory(): async_sessionmaker bound to engine
- ensure_schema(): idempotent CREATE TABLE IF NOT EXISTS, retried while MySQL starts
- ping(): SELECT 1 for health reporting

The pool never grows beyond pool_size (max_overflow=0); callers beyond the
bound wait up to pool_timeout seconds for a connection.
"""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.infra.models import Base
from src.shared.resilience.retry import RetryPolicy, retry_with_backoff

if TYPE_CHECKING:
    from src.shared.config import MySQLSettings

logger = logging.getLogger(__name__)

# MySQL is often still starting when the API container comes up
_SCHEMA_RETRY = RetryPolicy(max_retries=9, base_delay=1.0, multiplier=2.0, max_delay=5.0)


def create_db_engine(
    url: str,
    *,
    pool_size: int = 10,
    pool_timeout: float = 30.0,
    use_ssl: bool = False,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine for aiomysql.

    Args:
        url: Database URL (mysql+aiomysql:// scheme).
        pool_size: Upper bound on concurrent connections.
        pool_timeout: Seconds a caller waits for a free connection.
        use_ssl: Whether to negotiate TLS with the server.
        echo: Whether to log SQL statements.

    Returns:
        Configured AsyncEngine instance.
    """
    # TIMESTAMP columns are read and written in UTC
    connect_args: dict[str, Any] = {"init_command": "SET time_zone = '+00:00'"}
    if use_ssl:
        connect_args["ssl"] = ssl.create_default_context()
    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
        connect_args=connect_args,
    )


def create_engine_from_settings(settings: MySQLSettings) -> AsyncEngine:
    return create_db_engine(
        settings.url,
        pool_size=settings.pool_size,
        pool_timeout=settings.pool_timeout,
        use_ssl=settings.ssl,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine.

    Sessions are configured with expire_on_commit=False to allow
    accessing attributes after commit without re-fetching.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def ensure_schema(engine: AsyncEngine, *, policy: RetryPolicy | None = None) -> None:
    """Create the users table if it does not exist.

    Retries on OperationalError (server not accepting connections yet).

    Raises:
        RetryExhaustedError: If MySQL never became reachable.
    """

    async def _create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    await retry_with_backoff(
        _create,
        policy=policy or _SCHEMA_RETRY,
        retriable_exceptions=(OperationalError, OSError),
        label="MySQL schema bootstrap",
    )
    logger.info("MySQL schema ready")


async def ping(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Return True if a trivial query succeeds."""
    try:
        async with session_factory() as session:
            await session.execute(sa.text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("MySQL ping failed", exc_info=True)
        return False
    return True
