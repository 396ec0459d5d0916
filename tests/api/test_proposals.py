"""Proposal review endpoints: queue, detail, submit, review."""

from __future__ import annotations

from uuid import UUID, uuid4

from fastapi.testclient import TestClient

from app.api import dependencies
from app.models.mastery import LevelKind
from app.models.school import Observation
from tests.conftest import (
    T0,
    auth,
    mint_token,
    seed_competencies,
    seed_model,
    seed_section,
)


def _run_one_pair(client: TestClient, org_id: UUID, headers) -> dict:
    """Trigger a run over one learner x one competency with two observations."""
    section, (learner,) = seed_section(dependencies.school_repo, org_id, learners=1)
    (competency,) = seed_competencies(dependencies.school_repo, org_id, 1)
    dependencies.school_repo.seed(
        *[
            Observation.new(
                organization_id=org_id,
                learner_id=learner,
                competency_id=competency,
                created_at=T0,
            )
            for _ in range(2)
        ]
    )
    model, levels = seed_model(dependencies.mastery_repo, org_id)
    run = client.post(
        "/v1/mastery/snapshot-runs",
        json={
            "scope_kind": "section",
            "scope_id": str(section.id),
            "mastery_model_id": str(model.id),
        },
        headers=headers,
    ).json()
    (snapshot,) = client.get(
        f"/v1/mastery/snapshot-runs/{run['run_id']}/snapshots", headers=headers
    ).json()
    return {"snapshot": snapshot, "levels": levels}


def test_queue_lists_submitted_proposals(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    seeded = _run_one_pair(client, org_id, teacher_headers)

    queue = client.get("/v1/mastery/proposals", headers=teacher_headers).json()
    assert [p["id"] for p in queue] == [seeded["snapshot"]["id"]]

    approved = client.get(
        "/v1/mastery/proposals", params={"state": "approved"}, headers=teacher_headers
    ).json()
    assert approved == []


def test_detail_carries_links_and_history(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    snapshot = _run_one_pair(client, org_id, teacher_headers)["snapshot"]

    detail = client.get(
        f"/v1/mastery/proposals/{snapshot['id']}", headers=teacher_headers
    ).json()
    assert detail["snapshot"]["evidence_count"] == 2
    assert [link["evidence_type"] for link in detail["evidence_links"]] == [
        "observation",
        "observation",
    ]
    assert detail["history"] == []


def test_approve_then_review_again_conflicts(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    snapshot = _run_one_pair(client, org_id, teacher_headers)["snapshot"]
    url = f"/v1/mastery/proposals/{snapshot['id']}/review"

    resp = client.post(
        url, json={"action": "approve", "reviewer_notes": "ok"}, headers=teacher_headers
    )
    assert resp.status_code == 200
    assert resp.json()["review_state"] == "approved"
    assert resp.json()["mastery_level_id"] == snapshot["mastery_level_id"]

    again = client.post(url, json={"action": "approve"}, headers=teacher_headers)
    assert again.status_code == 409
    assert "error" in again.json()

    detail = client.get(
        f"/v1/mastery/proposals/{snapshot['id']}", headers=teacher_headers
    ).json()
    assert [e["action"] for e in detail["history"]] == ["approve"]


def test_override_changes_effective_level_only(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    seeded = _run_one_pair(client, org_id, teacher_headers)
    snapshot = seeded["snapshot"]
    target = str(seeded["levels"][LevelKind.MASTERED].id)

    resp = client.post(
        f"/v1/mastery/proposals/{snapshot['id']}/review",
        json={
            "action": "override",
            "override_level_id": target,
            "override_justification": "Capstone shows mastery",
        },
        headers=teacher_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["review_state"] == "overridden"
    assert body["effective_level_id"] == target
    assert body["mastery_level_id"] == snapshot["mastery_level_id"]


def test_invalid_review_is_400_and_changes_nothing(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    snapshot = _run_one_pair(client, org_id, teacher_headers)["snapshot"]

    resp = client.post(
        f"/v1/mastery/proposals/{snapshot['id']}/review",
        json={"action": "request_changes"},
        headers=teacher_headers,
    )

    assert resp.status_code == 400
    assert "reviewer_notes" in resp.json()["fields"]
    detail = client.get(
        f"/v1/mastery/proposals/{snapshot['id']}", headers=teacher_headers
    ).json()
    assert detail["snapshot"]["review_state"] == "submitted"
    assert detail["history"] == []


def test_request_changes_then_resubmit(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    snapshot = _run_one_pair(client, org_id, teacher_headers)["snapshot"]
    base = f"/v1/mastery/proposals/{snapshot['id']}"

    client.post(
        f"{base}/review",
        json={"action": "request_changes", "reviewer_notes": "Attach the rubric"},
        headers=teacher_headers,
    )
    resp = client.post(f"{base}/submit", headers=teacher_headers)

    assert resp.status_code == 200
    assert resp.json()["review_state"] == "submitted"
    assert client.post(f"{base}/submit", headers=teacher_headers).status_code == 409


def test_unknown_or_foreign_proposal_is_404(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    snapshot = _run_one_pair(client, org_id, teacher_headers)["snapshot"]
    outsider = auth(mint_token(roles=["teacher"], org_id=uuid4()))

    assert (
        client.get(f"/v1/mastery/proposals/{uuid4()}", headers=teacher_headers)
    ).status_code == 404
    assert (
        client.get(f"/v1/mastery/proposals/{snapshot['id']}", headers=outsider)
    ).status_code == 404
    resp = client.post(
        f"/v1/mastery/proposals/{snapshot['id']}/review",
        json={"action": "approve"},
        headers=outsider,
    )
    assert resp.status_code == 404
