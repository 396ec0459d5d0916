"""Authentication and role checks shared by every mastery endpoint."""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.services import token_service
from tests.conftest import auth, mint_token

_ENDPOINTS = [
    ("get", "/v1/mastery/snapshot-runs"),
    ("post", "/v1/mastery/snapshot-runs"),
    ("get", "/v1/mastery/proposals"),
    ("post", f"/v1/mastery/proposals/{uuid4()}/review"),
    (
        "get",
        f"/v1/mastery/reports/progress?learner_id={uuid4()}&snapshot_run_id={uuid4()}",
    ),
]


@pytest.mark.parametrize("method,path", _ENDPOINTS)
def test_no_token_is_401(client: TestClient, method: str, path: str) -> None:
    resp = client.request(method, path, json={})
    assert resp.status_code == 401


@pytest.mark.parametrize("method,path", _ENDPOINTS)
def test_learner_role_is_403(client: TestClient, method: str, path: str) -> None:
    headers = auth(mint_token(roles=["student"], org_id=uuid4()))
    resp = client.request(method, path, json={}, headers=headers)
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Insufficient permissions"}


@pytest.mark.parametrize("role", ["admin", "principal", "teacher", "faculty", "mentor"])
def test_every_staff_role_is_let_in(client: TestClient, role: str) -> None:
    headers = auth(mint_token(roles=[role], org_id=uuid4()))
    resp = client.get("/v1/mastery/snapshot-runs", headers=headers)
    assert resp.status_code == 200


def test_missing_org_context_is_400(client: TestClient) -> None:
    headers = auth(mint_token(roles=["teacher"]))
    resp = client.get("/v1/mastery/proposals", headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Organization context required"}


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get("/v1/mastery/proposals", headers=auth("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid token"}


def test_expired_token_is_401(client: TestClient) -> None:
    expired = token_service.create_access_token(
        sub=str(uuid4()), roles=["teacher"], org_id=str(uuid4()), ttl_minutes=-1
    )

    resp = client.get("/v1/mastery/proposals", headers=auth(expired))
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Token expired"}
