"""Golden-signals middleware for FastAPI.

- Latency: request duration histogram (seconds)
- Traffic: request counter
- Errors: 5xx counter
- Saturation: in-flight request gauge

Paths are labelled by route template (/api/mysql/users/{user_id}) so record
ids never become label values; unmatched paths share one label.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import Request, Response

REQUEST_DURATION = Histogram(
    "userbridge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path", "status_code"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

REQUEST_TOTAL = Counter(
    "userbridge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

ERROR_TOTAL = Counter(
    "userbridge_http_errors_total",
    "HTTP responses with status 5xx",
    ["method", "path", "status_code"],
)

ACTIVE_REQUESTS = Gauge(
    "userbridge_http_active_requests",
    "HTTP requests currently in flight",
    ["method"],
)

_EXEMPT_PATHS = frozenset({"/metrics"})
_UNMATCHED = "<unmatched>"


def route_label(request: Request) -> str:
    """Route template of the matched endpoint, or a shared label."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or _UNMATCHED


def _observe(method: str, path: str, status_code: int, duration: float) -> None:
    labels = {"method": method, "path": path, "status_code": str(status_code)}
    REQUEST_DURATION.labels(**labels).observe(duration)
    REQUEST_TOTAL.labels(**labels).inc()
    if status_code >= 500:
        ERROR_TOTAL.labels(**labels).inc()


async def golden_signals_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    if request.url.path in _EXEMPT_PATHS:
        return await call_next(request)

    method = request.method
    ACTIVE_REQUESTS.labels(method=method).inc()
    start = time.monotonic()
    try:
        response = await call_next(request)
    except Exception:
        _observe(method, route_label(request), 500, time.monotonic() - start)
        raise
    finally:
        ACTIVE_REQUESTS.labels(method=method).dec()

    _observe(method, route_label(request), response.status_code, time.monotonic() - start)
    return response
