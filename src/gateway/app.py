"""FastAPI application factory.

- Error handlers map the userbridge error hierarchy to HTTP status codes,
  always with a JSON body {"error": message, "code": code}
- Request validation failures answer 400 with the required-fields message
- Middleware: CORS, golden-signals metrics, X-Request-ID trace id
- /metrics: Prometheus exposition
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.gateway.metrics.golden_signals import golden_signals_middleware
from src.shared.errors import (
    ClusterNotReadyError,
    ClusterUnavailableError,
    ConflictError,
    NotFoundError,
    StoreError,
    UserBridgeError,
    ValidationError,
)
from src.shared.logging.error_handler import log_structured_error
from src.shared.trace_context import REQUEST_ID_HEADER, trace_context
from src.shared.types import REQUIRED_FIELDS_MESSAGE

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[UserBridgeError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ClusterNotReadyError, 503),
    (ClusterUnavailableError, 503),
    (StoreError, 500),
)


def status_for(exc: UserBridgeError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _error_body(message: str, code: str) -> dict[str, str]:
    return {"error": message, "code": code}


def create_app(*, cors_origins: list[str] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        cors_origins: Allowed CORS origins; ["*"] when not given.

    Returns:
        Application without routers; the composition root mounts them.
    """
    app = FastAPI(
        title="userbridge",
        description="User records over MySQL and a Redis Cluster",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.middleware("http")(golden_signals_middleware)

    @app.middleware("http")
    async def trace_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        with trace_context(request.headers.get(REQUEST_ID_HEADER)) as trace_id:
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = trace_id
        return response

    # -- Error handlers --

    @app.exception_handler(UserBridgeError)
    async def _userbridge_error(_: Request, exc: UserBridgeError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500 and not isinstance(exc, ClusterNotReadyError):
            logger.error("%s: %s", exc.code, exc)
        return JSONResponse(status_code=status, content=_error_body(str(exc), exc.code))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Request validation failed: %s", exc.errors())
        return JSONResponse(
            status_code=400,
            content=_error_body(REQUIRED_FIELDS_MESSAGE, "VALIDATION"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        code_map = {
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                str(exc.detail or f"HTTP {exc.status_code}"),
                code_map.get(exc.status_code, "HTTP_ERROR"),
            ),
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        log_structured_error(
            logger,
            exc,
            context={"method": request.method, "path": request.url.path},
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/metrics", tags=["system"], include_in_schema=False)
    async def metrics() -> Response:
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app
