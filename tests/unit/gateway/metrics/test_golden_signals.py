"""Tests for the golden-signals middleware.

Verifies: latency, traffic, errors and saturation are recorded per route template.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from src.gateway.metrics.golden_signals import golden_signals_middleware, route_label


@pytest.fixture()
def app() -> FastAPI:
    _app = FastAPI()
    _app.middleware("http")(golden_signals_middleware)

    @_app.get("/gs/users/{user_id}")
    async def _user(user_id: str) -> dict:
        return {"id": user_id}

    @_app.get("/gs/error")
    async def _error() -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": "boom"})

    @_app.get("/gs/crash")
    async def _crash() -> dict:
        raise RuntimeError("crash")

    @_app.get("/metrics")
    async def _metrics() -> dict:
        return {}

    return _app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


_USER_LABELS = {"method": "GET", "path": "/gs/users/{user_id}", "status_code": "200"}


@pytest.mark.unit
class TestGoldenSignals:
    def test_traffic_labelled_by_route_template(self, client: TestClient) -> None:
        before = _sample("userbridge_http_requests_total", _USER_LABELS)
        client.get("/gs/users/1")
        client.get("/gs/users/2")
        assert _sample("userbridge_http_requests_total", _USER_LABELS) == before + 2

    def test_latency_observed(self, client: TestClient) -> None:
        before = _sample("userbridge_http_request_duration_seconds_count", _USER_LABELS)
        client.get("/gs/users/abc")
        assert _sample("userbridge_http_request_duration_seconds_count", _USER_LABELS) == before + 1

    def test_5xx_counted_as_error(self, client: TestClient) -> None:
        labels = {"method": "GET", "path": "/gs/error", "status_code": "500"}
        before = _sample("userbridge_http_errors_total", labels)
        client.get("/gs/error")
        assert _sample("userbridge_http_errors_total", labels) == before + 1

    def test_unhandled_exception_counted_as_500(self, client: TestClient) -> None:
        labels = {"method": "GET", "path": "/gs/crash", "status_code": "500"}
        before = _sample("userbridge_http_errors_total", labels)
        assert client.get("/gs/crash").status_code == 500
        assert _sample("userbridge_http_errors_total", labels) == before + 1

    def test_unmatched_paths_share_a_label(self, client: TestClient) -> None:
        labels = {"method": "GET", "path": "<unmatched>", "status_code": "404"}
        before = _sample("userbridge_http_requests_total", labels)
        client.get("/gs/nope/1")
        client.get("/gs/nope/2")
        assert _sample("userbridge_http_requests_total", labels) == before + 2

    def test_metrics_path_exempt(self, client: TestClient) -> None:
        labels = {"method": "GET", "path": "/metrics", "status_code": "200"}
        client.get("/metrics")
        assert _sample("userbridge_http_requests_total", labels) == 0.0

    def test_active_requests_back_to_baseline(self, client: TestClient) -> None:
        before = _sample("userbridge_http_active_requests", {"method": "GET"})
        client.get("/gs/users/1")
        assert _sample("userbridge_http_active_requests", {"method": "GET"}) == before


@pytest.mark.unit
class TestRouteLabel:
    def test_without_route(self) -> None:
        from starlette.requests import Request

        request = Request({"type": "http", "method": "GET", "path": "/x", "headers": []})
        assert route_label(request) == "<unmatched>"
