"""Learner progress report for one snapshot run.

Per competency: the effective level (override when overridden, else the
automated level), evidence count, last evidence time and review state.
Plus a distribution of effective levels, keyed by label.
"""

from __future__ import annotations

from collections import Counter
from uuid import UUID

from app.repos.mastery_repo import MasteryModelRepo
from app.repos.snapshot_repo import SnapshotRepo
from app.services.errors import NotFoundError

REPORT_CACHE_TTL = 300


def report_cache_key(run_id: UUID, learner_id: UUID) -> str:
    return f"report:{run_id}:{learner_id}"


async def build_progress_report(
    *,
    snapshot_repo: SnapshotRepo,
    mastery_repo: MasteryModelRepo,
    run_id: UUID,
    learner_id: UUID,
    org_id: UUID,
) -> dict:
    run = await snapshot_repo.get_run(run_id, org_id)
    if run is None:
        raise NotFoundError("Snapshot run not found")

    snapshots = await snapshot_repo.list_learner_snapshots(run_id, learner_id)
    labels: dict[UUID, str] = {}
    for s in snapshots:
        for level_id in {s.effective_level_id, s.mastery_level_id}:
            if level_id not in labels:
                level = await mastery_repo.get_level(level_id)
                labels[level_id] = level.label if level else "unknown"

    competencies = [
        {
            "competency_id": str(s.competency_id),
            "snapshot_id": str(s.id),
            "level_id": str(s.effective_level_id),
            "level_label": labels[s.effective_level_id],
            "automated_level_id": str(s.mastery_level_id),
            "automated_level_label": labels[s.mastery_level_id],
            "evidence_count": s.evidence_count,
            "last_evidence_at": (
                s.last_evidence_at.isoformat() if s.last_evidence_at else None
            ),
            "review_state": s.review_state.value,
        }
        for s in sorted(snapshots, key=lambda s: str(s.competency_id))
    ]
    distribution = Counter(labels[s.effective_level_id] for s in snapshots)
    return {
        "learner_id": str(learner_id),
        "snapshot_run_id": str(run_id),
        "snapshot_date": run.snapshot_date.isoformat(),
        "competencies": competencies,
        "level_distribution": dict(distribution),
    }
