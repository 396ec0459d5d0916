"""Response models shared by the mastery routers."""

from __future__ import annotations

import datetime

from pydantic import BaseModel

from app.models.snapshot import EvidenceLink, ReviewEvent, Snapshot, SnapshotRun


class SnapshotRunOut(BaseModel):
    id: str
    organization_id: str
    school_id: str | None
    scope_kind: str
    scope_id: str
    school_year_id: str | None
    quarter: str | None
    term: str | None
    snapshot_date: datetime.date
    snapshot_count: int
    created_by: str
    created_at: datetime.datetime
    finalized_at: datetime.datetime | None

    @classmethod
    def from_run(cls, run: SnapshotRun) -> SnapshotRunOut:
        return cls(
            id=str(run.id),
            organization_id=str(run.organization_id),
            school_id=str(run.school_id) if run.school_id else None,
            scope_kind=run.scope_kind.value,
            scope_id=str(run.scope_id),
            school_year_id=str(run.school_year_id) if run.school_year_id else None,
            quarter=run.quarter,
            term=run.term,
            snapshot_date=run.snapshot_date,
            snapshot_count=run.snapshot_count,
            created_by=str(run.created_by),
            created_at=run.created_at,
            finalized_at=run.finalized_at,
        )


def _opt(value) -> str | None:
    return str(value) if value is not None else None


class SnapshotOut(BaseModel):
    id: str
    run_id: str | None
    learner_id: str
    competency_id: str
    mastery_level_id: str  # automated, never changes
    effective_level_id: str
    teacher_id: str
    rationale_text: str
    evidence_count: int
    last_evidence_at: datetime.datetime | None
    snapshot_date: datetime.date
    confirmed_at: datetime.datetime
    confirmed_by: str
    created_by: str
    review_state: str
    reviewer_notes: str | None
    override_level_id: str | None
    override_justification: str | None
    reviewed_by: str | None
    reviewed_at: datetime.datetime | None

    @classmethod
    def from_snapshot(cls, s: Snapshot) -> SnapshotOut:
        return cls(
            id=str(s.id),
            run_id=_opt(s.run_id),
            learner_id=str(s.learner_id),
            competency_id=str(s.competency_id),
            mastery_level_id=str(s.mastery_level_id),
            effective_level_id=str(s.effective_level_id),
            teacher_id=str(s.teacher_id),
            rationale_text=s.rationale_text,
            evidence_count=s.evidence_count,
            last_evidence_at=s.last_evidence_at,
            snapshot_date=s.snapshot_date,
            confirmed_at=s.confirmed_at,
            confirmed_by=str(s.confirmed_by),
            created_by=str(s.created_by),
            review_state=s.review_state.value,
            reviewer_notes=s.reviewer_notes,
            override_level_id=_opt(s.override_level_id),
            override_justification=s.override_justification,
            reviewed_by=_opt(s.reviewed_by),
            reviewed_at=s.reviewed_at,
        )


class EvidenceLinkOut(BaseModel):
    id: str
    evidence_type: str
    source_id: str
    assessment_id: str | None
    observation_id: str | None
    portfolio_artifact_id: str | None
    lesson_log_id: str | None

    @classmethod
    def from_link(cls, link: EvidenceLink) -> EvidenceLinkOut:
        return cls(
            id=str(link.id),
            evidence_type=link.evidence_type.value,
            source_id=str(link.source_id),
            assessment_id=_opt(link.assessment_id),
            observation_id=_opt(link.observation_id),
            portfolio_artifact_id=_opt(link.portfolio_artifact_id),
            lesson_log_id=_opt(link.lesson_log_id),
        )


class ReviewEventOut(BaseModel):
    id: str
    action: str
    from_state: str
    to_state: str
    actor_id: str
    occurred_at: datetime.datetime
    reviewer_notes: str | None
    override_level_id: str | None
    override_justification: str | None

    @classmethod
    def from_event(cls, e: ReviewEvent) -> ReviewEventOut:
        return cls(
            id=str(e.id),
            action=e.action.value,
            from_state=e.from_state.value,
            to_state=e.to_state.value,
            actor_id=str(e.actor_id),
            occurred_at=e.occurred_at,
            reviewer_notes=e.reviewer_notes,
            override_level_id=_opt(e.override_level_id),
            override_justification=e.override_justification,
        )


class CompetencyProgressOut(BaseModel):
    competency_id: str
    snapshot_id: str
    level_id: str
    level_label: str
    automated_level_id: str
    automated_level_label: str
    evidence_count: int
    last_evidence_at: datetime.datetime | None
    review_state: str


class ProgressReportOut(BaseModel):
    """Effective level per competency, plus how many sit at each level."""

    learner_id: str
    snapshot_run_id: str
    snapshot_date: datetime.date
    competencies: list[CompetencyProgressOut]
    level_distribution: dict[str, int]
