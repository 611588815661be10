"""Tests for the FastAPI app factory: error mapping, trace ids, /metrics."""

from __future__ import annotations

import logging

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from src.gateway.app import create_app, status_for
from src.shared.errors import (
    ClusterNotReadyError,
    ClusterUnavailableError,
    ConflictError,
    NotFoundError,
    PortTimeoutError,
    StoreError,
    UserBridgeError,
    ValidationError,
)
from src.shared.trace_context import REQUEST_ID_HEADER, get_trace_id

_ERRORS: dict[str, Exception] = {
    "validation": ValidationError("Name and email are required"),
    "not-found": NotFoundError("User", "1"),
    "conflict": ConflictError("Email already exists"),
    "not-ready": ClusterNotReadyError("degraded"),
    "unavailable": ClusterUnavailableError(attempts=3),
    "store": StoreError("mysql", "Database error"),
    "boom": RuntimeError("secret internals"),
}


class _Body(BaseModel):
    name: str


def _probe_router() -> APIRouter:
    router = APIRouter(prefix="/probe")

    @router.get("/raise/{kind}")
    async def _raise(kind: str) -> dict[str, str]:
        raise _ERRORS[kind]

    @router.get("/trace")
    async def _trace() -> dict[str, str]:
        return {"trace_id": get_trace_id()}

    @router.post("/body")
    async def _body(body: _Body) -> dict[str, str]:
        return {"name": body.name}

    return router


@pytest.fixture()
def app() -> FastAPI:
    application = create_app(cors_origins=["http://localhost:3000"])
    application.include_router(_probe_router())
    return application


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.unit
class TestStatusFor:
    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (ValidationError("v"), 400),
            (NotFoundError("User", "1"), 404),
            (ConflictError("c"), 409),
            (ClusterNotReadyError("failed"), 503),
            (ClusterUnavailableError(attempts=1), 503),
            (StoreError("redis"), 500),
            (PortTimeoutError("redis_cluster", 10), 500),
            (UserBridgeError("x"), 500),
        ],
    )
    def test_mapping(self, exc: UserBridgeError, status: int) -> None:
        assert status_for(exc) == status


@pytest.mark.unit
class TestErrorHandlers:
    @pytest.mark.parametrize(
        ("kind", "status", "code"),
        [
            ("validation", 400, "VALIDATION"),
            ("not-found", 404, "NOT_FOUND"),
            ("conflict", 409, "CONFLICT"),
            ("not-ready", 503, "CLUSTER_NOT_READY"),
            ("unavailable", 503, "CLUSTER_UNAVAILABLE"),
            ("store", 500, "STORE_ERROR"),
        ],
    )
    def test_domain_errors(self, client: TestClient, kind: str, status: int, code: str) -> None:
        resp = client.get(f"/probe/raise/{kind}")
        assert resp.status_code == status
        assert resp.json() == {"error": str(_ERRORS[kind]), "code": code}

    def test_unexpected_error_hides_details(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR):
            resp = client.get("/probe/raise/boom")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "secret internals" not in resp.text
        assert any(r.getMessage() == "Unhandled RuntimeError: secret internals" for r in caplog.records)

    def test_invalid_body_is_400(self, client: TestClient) -> None:
        resp = client.post("/probe/body", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Name and email are required", "code": "VALIDATION"}

    def test_malformed_json_is_400(self, client: TestClient) -> None:
        resp = client.post(
            "/probe/body",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    def test_unknown_route(self, client: TestClient) -> None:
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_wrong_method(self, client: TestClient) -> None:
        resp = client.delete("/probe/trace")
        assert resp.status_code == 405
        assert resp.json()["code"] == "METHOD_NOT_ALLOWED"


@pytest.mark.unit
class TestTraceId:
    def test_echoes_incoming_request_id(self, client: TestClient) -> None:
        resp = client.get("/probe/trace", headers={REQUEST_ID_HEADER: "req-42"})
        assert resp.json() == {"trace_id": "req-42"}
        assert resp.headers[REQUEST_ID_HEADER] == "req-42"

    def test_generates_request_id(self, client: TestClient) -> None:
        resp = client.get("/probe/trace")
        assert resp.headers[REQUEST_ID_HEADER] == resp.json()["trace_id"]
        assert resp.headers[REQUEST_ID_HEADER]

    def test_error_responses_carry_request_id(self, client: TestClient) -> None:
        resp = client.get("/probe/raise/conflict", headers={REQUEST_ID_HEADER: "req-7"})
        assert resp.headers[REQUEST_ID_HEADER] == "req-7"


@pytest.mark.unit
class TestAppSurface:
    def test_metrics_endpoint(self, client: TestClient) -> None:
        client.get("/probe/trace")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "userbridge_http_requests_total" in resp.text

    def test_cors_preflight(self, client: TestClient) -> None:
        resp = client.options(
            "/probe/trace",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_openapi_accessible(self, client: TestClient) -> None:
        resp = client.get("/openapi.json")
        assert resp.status_code == 200
        assert resp.json()["info"]["title"] == "userbridge"
