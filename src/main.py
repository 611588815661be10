"""Application composition root -- wires all layers into a runnable FastAPI app.

- Loads .env, then reads configuration from environment variables
- Creates the async MySQL engine + session factory
- Creates the Redis cluster adapter (one per process)
- Instantiates both user stores and the bulk services
- Mounts the routers onto the FastAPI app

Entry point: uvicorn src.main:app --host 0.0.0.0 --port 5000
         or: python -m src.main  (port from PORT)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from functools import partial
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from src.gateway.api.bulk import create_bulk_router
from src.gateway.api.health import create_health_router
from src.gateway.api.redis_admin import create_redis_admin_router
from src.gateway.api.users import create_user_router
from src.gateway.app import create_app
from src.infra.cache.cluster import RedisClusterAdapter
from src.infra.db import (
    create_engine_from_settings,
    create_session_factory,
    ensure_schema,
    ping,
)
from src.infra.users import MySQLUserStore, RedisUserStore
from src.shared.config import AppSettings, load_settings
from src.shared.errors import ClusterInitError
from src.shared.logging.error_handler import log_structured_error
from src.shared.resilience.retry import RetryExhaustedError
from src.shared.trace_context import TraceIdFilter
from src.users.cleanup import DuplicateCleaner
from src.users.transfer import UserTransferService

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(trace_id)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    trace_filter = TraceIdFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(trace_filter)


def build_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the application: instantiate adapters, wire dependencies, mount routers.

    This function is the single composition root. No other module
    instantiates adapters or holds references to them.
    """
    if settings is None:
        load_dotenv()
        settings = load_settings()
    configure_logging(settings.log_level)

    # -- Infrastructure layer --
    db_engine = create_engine_from_settings(settings.mysql)
    session_factory = create_session_factory(db_engine)
    cluster = RedisClusterAdapter(settings.redis)

    # -- Stores and services --
    mysql_store = MySQLUserStore(session_factory=session_factory)
    redis_store = RedisUserStore(cluster=cluster)
    transfer = UserTransferService(mysql=mysql_store, redis=redis_store)
    cleaner = DuplicateCleaner(redis=redis_store)

    application = create_app(cors_origins=list(settings.cors_origins))

    # -- Store references on app.state for lifecycle hooks --
    application.state.settings = settings
    application.state.db_engine = db_engine
    application.state.session_factory = session_factory
    application.state.cluster = cluster
    application.state.bootstrap_task = None

    # -- Mount routers --
    application.include_router(
        create_health_router(mysql_ping=partial(ping, session_factory), cluster=cluster),
    )
    application.include_router(
        create_user_router(prefix="/api/mysql/users", store=mysql_store),
    )
    application.include_router(
        create_user_router(prefix="/api/redis/users", store=redis_store, cluster=cluster),
    )
    application.include_router(
        create_bulk_router(transfer=transfer, cluster=cluster),
    )
    application.include_router(
        create_redis_admin_router(cleaner=cleaner, cluster=cluster),
    )

    async def _bootstrap_mysql() -> None:
        try:
            await ensure_schema(db_engine)
        except RetryExhaustedError as exc:
            logger.error("MySQL schema bootstrap failed: %s", exc)
        except Exception as exc:  # noqa: BLE001
            log_structured_error(logger, exc, context={"phase": "mysql_bootstrap"})

    async def _bootstrap_redis() -> None:
        try:
            await cluster.become_ready()
        except ClusterInitError as exc:
            logger.error("Redis cluster unavailable at startup: %s", exc)
        except Exception as exc:  # noqa: BLE001
            log_structured_error(logger, exc, context={"phase": "redis_bootstrap"})

    # Independent: neither backend waits on or is skipped by the other
    async def _bootstrap_backends() -> None:
        await asyncio.gather(_bootstrap_mysql(), _bootstrap_redis())

    # Backends come up in the background: the server answers at once, MySQL
    # routes with 500 until it is reachable, Redis routes with 503 until READY.
    @application.on_event("startup")
    async def _startup_bootstrap() -> None:
        application.state.bootstrap_task = asyncio.create_task(
            _bootstrap_backends(),
            name="userbridge-bootstrap",
        )

    @application.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        task = application.state.bootstrap_task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await cluster.close()
        await db_engine.dispose()

    logger.info(
        "userbridge app assembled: %d routes mounted",
        len(application.routes),
    )

    return application


app = build_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)  # noqa: S104
