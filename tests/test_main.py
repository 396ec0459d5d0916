from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app
from app.services.errors import MasteryError

client = TestClient(app)


def test_app_title() -> None:
    assert app.title == "mastery-service"


def test_engine_routes_registered() -> None:
    paths = {getattr(route, "path", None) for route in app.routes}
    assert {
        "/health",
        "/ready",
        "/metrics",
        "/v1/mastery/snapshot-runs",
        "/v1/mastery/snapshot-runs/{run_id}",
        "/v1/mastery/snapshot-runs/{run_id}/snapshots",
        "/v1/mastery/proposals",
        "/v1/mastery/proposals/{snapshot_id}",
        "/v1/mastery/proposals/{snapshot_id}/submit",
        "/v1/mastery/proposals/{snapshot_id}/review",
        "/v1/mastery/reports/progress",
    } <= paths


def test_engine_errors_have_a_handler() -> None:
    assert MasteryError in app.exception_handlers


def test_health_returns_ok() -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_engine_endpoints_reject_missing_token() -> None:
    resp = client.get("/v1/mastery/snapshot-runs")
    assert resp.status_code == 401
