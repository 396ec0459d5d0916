"""Progress report cache tests.

1. First GET is a miss and populates the cache
2. Second GET is a hit and returns the same JSON
3. A review deletes the key so the next GET reflects the decision
4. Another organization never sees the cached report
"""

from __future__ import annotations

from uuid import UUID, uuid4

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from app.api import dependencies
from app.models.mastery import LevelKind
from app.services.cache import cache_service
from app.services.progress_report import report_cache_key
from tests.conftest import auth, mint_token, seed_competencies, seed_model, seed_section


def _cache_count(result: str) -> float:
    return (
        REGISTRY.get_sample_value("mastery_report_cache_total", {"result": result})
        or 0.0
    )


def _seed_run(client: TestClient, org_id: UUID, headers):
    section, (learner,) = seed_section(dependencies.school_repo, org_id, learners=1)
    seed_competencies(dependencies.school_repo, org_id, 2)
    model, levels = seed_model(dependencies.mastery_repo, org_id)
    run_id = client.post(
        "/v1/mastery/snapshot-runs",
        json={
            "scope_kind": "section",
            "scope_id": str(section.id),
            "mastery_model_id": str(model.id),
        },
        headers=headers,
    ).json()["run_id"]
    return run_id, learner, levels


def _report(client: TestClient, run_id, learner, headers):
    return client.get(
        "/v1/mastery/reports/progress",
        params={"learner_id": str(learner), "snapshot_run_id": run_id},
        headers=headers,
    )


def test_cache_miss_then_hit(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    run_id, learner, _ = _seed_run(client, org_id, teacher_headers)
    misses, hits = _cache_count("miss"), _cache_count("hit")

    first = _report(client, run_id, learner, teacher_headers)
    second = _report(client, run_id, learner, teacher_headers)

    assert first.status_code == 200
    assert first.json() == second.json()
    assert len(first.json()["competencies"]) == 2
    assert first.json()["level_distribution"] == {"Not Started": 2}
    assert _cache_count("miss") - misses == 1
    assert _cache_count("hit") - hits == 1


def test_review_invalidates_cached_report(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    run_id, learner, levels = _seed_run(client, org_id, teacher_headers)
    _report(client, run_id, learner, teacher_headers)
    key = report_cache_key(UUID(run_id), learner)
    assert key in cache_service._store  # type: ignore[union-attr]

    snapshot = client.get(
        f"/v1/mastery/snapshot-runs/{run_id}/snapshots", headers=teacher_headers
    ).json()[0]
    client.post(
        f"/v1/mastery/proposals/{snapshot['id']}/review",
        json={
            "action": "override",
            "override_level_id": str(levels[LevelKind.PROFICIENT].id),
            "override_justification": "Portfolio review",
        },
        headers=teacher_headers,
    )
    assert key not in cache_service._store  # type: ignore[union-attr]

    report = _report(client, run_id, learner, teacher_headers).json()
    assert report["level_distribution"] == {"Not Started": 1, "Proficient": 1}


def test_report_fields_match_the_published_model(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    run_id, learner, _ = _seed_run(client, org_id, teacher_headers)

    report = _report(client, run_id, learner, teacher_headers).json()

    assert set(report) == {
        "learner_id",
        "snapshot_run_id",
        "snapshot_date",
        "competencies",
        "level_distribution",
    }
    assert report["learner_id"] == str(learner)
    assert report["snapshot_run_id"] == run_id
    row = report["competencies"][0]
    assert set(row) == {
        "competency_id",
        "snapshot_id",
        "level_id",
        "level_label",
        "automated_level_id",
        "automated_level_label",
        "evidence_count",
        "last_evidence_at",
        "review_state",
    }
    assert row["evidence_count"] == 0
    assert row["last_evidence_at"] is None
    assert row["review_state"] == "submitted"

    openapi = client.get("/openapi.json").json()
    ok = openapi["paths"]["/v1/mastery/reports/progress"]["get"]["responses"]["200"]
    ref = ok["content"]["application/json"]["schema"]["$ref"]
    assert ref.endswith("/ProgressReportOut")


def test_cached_report_not_served_to_another_org(
    client: TestClient, org_id: UUID, teacher_headers
) -> None:
    run_id, learner, _ = _seed_run(client, org_id, teacher_headers)
    _report(client, run_id, learner, teacher_headers)

    outsider = auth(mint_token(roles=["teacher"], org_id=uuid4()))
    resp = _report(client, run_id, learner, outsider)
    assert resp.status_code == 404


def test_unknown_run_is_404(client: TestClient, teacher_headers) -> None:
    resp = _report(client, str(uuid4()), uuid4(), teacher_headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Snapshot run not found"}
