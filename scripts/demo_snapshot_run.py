"""Demo: snapshot a section, review the proposals, read the report.

Uses the in-memory repositories (no DATABASE_URL) and a locally minted
token, driven through FastAPI TestClient.

Run with:
    python scripts/demo_snapshot_run.py
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from fastapi.testclient import TestClient

from app.api import dependencies
from app.main import app
from app.models.mastery import (
    LevelKind,
    MasteryLevel,
    MasteryModel,
    MasteryThresholds,
)
from app.models.school import (
    Assessment,
    Competency,
    Observation,
    Section,
    SectionEnrollment,
)
from app.services import token_service

ORG_ID = uuid4()
T0 = datetime(2026, 9, 1, 9, 0, tzinfo=UTC)


def main() -> None:
    client = TestClient(app)
    headers = {
        "Authorization": "Bearer "
        + token_service.create_access_token(
            sub=str(uuid4()), roles=["teacher"], org_id=str(ORG_ID)
        )
    }

    # ── Seed data ───────────────────────────────────────────────────
    school = dependencies.school_repo
    section = Section(id=uuid4(), organization_id=ORG_ID)
    ada, grace = uuid4(), uuid4()
    reading = Competency(uuid4(), ORG_ID, "Reading comprehension")
    writing = Competency(uuid4(), ORG_ID, "Argumentative writing")
    school.seed(
        section,
        SectionEnrollment(section.id, ada),
        SectionEnrollment(section.id, grace),
        reading,
        writing,
    )
    # Ada: six reading observations plus an assessment -> proficient
    observations = [
        Observation.new(
            organization_id=ORG_ID,
            learner_id=ada,
            competency_id=reading.id,
            created_at=T0 + timedelta(days=i),
        )
        for i in range(6)
    ]
    school.seed(
        *observations,
        Assessment(
            id=uuid4(),
            organization_id=ORG_ID,
            learner_id=ada,
            created_at=T0 + timedelta(days=7),
            status="completed",
            observation_ids=(observations[0].id,),
        ),
    )

    model = MasteryModel.new(
        organization_id=ORG_ID,
        name="Standard",
        thresholds=MasteryThresholds(
            emerging=1, developing=3, proficient=5, mastered=8
        ),
    )
    levels = [
        MasteryLevel.new(
            mastery_model_id=model.id,
            label=kind.value.replace("_", " ").title(),
            display_order=i,
            kind=kind,
        )
        for i, kind in enumerate(LevelKind)
    ]
    dependencies.mastery_repo.add_model(model, levels)

    # ── Step 1: trigger the batch ───────────────────────────────────
    r = client.post(
        "/v1/mastery/snapshot-runs",
        json={
            "scope_kind": "section",
            "scope_id": str(section.id),
            "mastery_model_id": str(model.id),
            "quarter": "Q1",
        },
        headers=headers,
    )
    run = r.json()
    print(f"1. POST snapshot-runs      → {r.status_code}  {run['message']}")

    # ── Step 2: review queue ────────────────────────────────────────
    r = client.get("/v1/mastery/proposals", headers=headers)
    queue = r.json()
    print(f"2. GET  proposals          → {r.status_code}  ({len(queue)} submitted)")

    # ── Step 3: approve Ada's reading, override Grace's writing ─────
    by_pair = {(p["learner_id"], p["competency_id"]): p for p in queue}
    ada_reading = by_pair[(str(ada), str(reading.id))]
    r = client.post(
        f"/v1/mastery/proposals/{ada_reading['id']}/review",
        json={"action": "approve", "reviewer_notes": "Consistent evidence"},
        headers=headers,
    )
    print(f"3. POST review (approve)   → {r.status_code}  {r.json()['review_state']}")

    grace_writing = by_pair[(str(grace), str(writing.id))]
    emerging = next(lvl for lvl in levels if lvl.kind is LevelKind.EMERGING)
    r = client.post(
        f"/v1/mastery/proposals/{grace_writing['id']}/review",
        json={
            "action": "override",
            "override_level_id": str(emerging.id),
            "override_justification": "Draft essay shared in conference",
        },
        headers=headers,
    )
    print(f"4. POST review (override)  → {r.status_code}  {r.json()['review_state']}")

    # ── Step 4: second review on a decided proposal ─────────────────
    r = client.post(
        f"/v1/mastery/proposals/{ada_reading['id']}/review",
        json={"action": "approve"},
        headers=headers,
    )
    print(f"5. POST review (again)     → {r.status_code}  {r.json()['error']}")

    # ── Step 5: progress reports ────────────────────────────────────
    for name, learner in (("Ada", ada), ("Grace", grace)):
        r = client.get(
            "/v1/mastery/reports/progress",
            params={"learner_id": str(learner), "snapshot_run_id": run["run_id"]},
            headers=headers,
        )
        report = r.json()
        print(
            f"6. GET  report ({name:<5})    → {r.status_code}  "
            f"{report['level_distribution']}"
        )


if __name__ == "__main__":
    main()
