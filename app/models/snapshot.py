from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID, uuid4

from app.models.evidence import EvidenceItem, EvidenceKind
from app.models.scope import ScopeKind


class ReviewState(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    OVERRIDDEN = "overridden"


class ReviewAction(StrEnum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    OVERRIDE = "override"


@dataclass(frozen=True, slots=True)
class SnapshotRun:
    """Batch container: one per invocation, never deleted."""

    id: UUID
    organization_id: UUID
    scope_kind: ScopeKind
    scope_id: UUID
    snapshot_date: date
    created_by: UUID
    created_at: datetime
    school_id: UUID | None = None
    school_year_id: UUID | None = None
    quarter: str | None = None
    term: str | None = None
    snapshot_count: int = 0
    finalized_at: datetime | None = None

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        scope_kind: ScopeKind,
        scope_id: UUID,
        snapshot_date: date,
        created_by: UUID,
        created_at: datetime,
        school_id: UUID | None = None,
        school_year_id: UUID | None = None,
        quarter: str | None = None,
        term: str | None = None,
    ) -> SnapshotRun:
        return SnapshotRun(
            id=uuid4(),
            organization_id=organization_id,
            scope_kind=scope_kind,
            scope_id=scope_id,
            snapshot_date=snapshot_date,
            created_by=created_by,
            created_at=created_at,
            school_id=school_id,
            school_year_id=school_year_id,
            quarter=quarter,
            term=term,
        )


@dataclass(frozen=True, slots=True)
class Snapshot:
    """One point-in-time mastery judgment for a learner/competency pair.

    The automated fields (mastery_level_id, rationale_text,
    evidence_count, last_evidence_at) are written once.  Review only
    fills in the review_* / override_* fields, so the record always
    shows both what the algorithm said and what the reviewer decided.
    """

    id: UUID
    organization_id: UUID
    run_id: UUID | None
    learner_id: UUID
    competency_id: UUID
    mastery_level_id: UUID
    teacher_id: UUID
    rationale_text: str
    evidence_count: int
    last_evidence_at: datetime | None
    snapshot_date: date
    confirmed_at: datetime
    confirmed_by: UUID
    created_by: UUID
    created_at: datetime
    school_id: UUID | None = None
    review_state: ReviewState = ReviewState.SUBMITTED
    reviewer_notes: str | None = None
    override_level_id: UUID | None = None
    override_justification: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None

    @property
    def effective_level_id(self) -> UUID:
        if self.review_state is ReviewState.OVERRIDDEN and self.override_level_id:
            return self.override_level_id
        return self.mastery_level_id


@dataclass(frozen=True, slots=True)
class EvidenceLink:
    """Immutable pointer from a snapshot to exactly one evidence record."""

    id: UUID
    snapshot_id: UUID
    evidence_type: EvidenceKind
    created_by: UUID
    assessment_id: UUID | None = None
    observation_id: UUID | None = None
    portfolio_artifact_id: UUID | None = None
    lesson_log_id: UUID | None = None

    @property
    def source_id(self) -> UUID:
        ref = (
            self.assessment_id
            or self.observation_id
            or self.portfolio_artifact_id
            or self.lesson_log_id
        )
        assert ref is not None  # guaranteed by for_item()
        return ref

    @staticmethod
    def for_item(
        *, snapshot_id: UUID, item: EvidenceItem, created_by: UUID
    ) -> EvidenceLink:
        column = _LINK_COLUMN[item.kind]
        return EvidenceLink(
            id=uuid4(),
            snapshot_id=snapshot_id,
            evidence_type=item.kind,
            created_by=created_by,
            **{column: item.source_id},
        )


_LINK_COLUMN: dict[EvidenceKind, str] = {
    EvidenceKind.ASSESSMENT: "assessment_id",
    EvidenceKind.OBSERVATION: "observation_id",
    EvidenceKind.PORTFOLIO_ARTIFACT: "portfolio_artifact_id",
    EvidenceKind.LESSON_LOG: "lesson_log_id",
}


@dataclass(frozen=True, slots=True)
class ReviewEvent:
    """Append-only audit entry for one applied workflow action."""

    id: UUID
    snapshot_id: UUID
    action: ReviewAction
    from_state: ReviewState
    to_state: ReviewState
    actor_id: UUID
    occurred_at: datetime
    reviewer_notes: str | None = None
    override_level_id: UUID | None = None
    override_justification: str | None = None

    @staticmethod
    def new(
        *,
        snapshot_id: UUID,
        action: ReviewAction,
        from_state: ReviewState,
        to_state: ReviewState,
        actor_id: UUID,
        occurred_at: datetime,
        reviewer_notes: str | None = None,
        override_level_id: UUID | None = None,
        override_justification: str | None = None,
    ) -> ReviewEvent:
        return ReviewEvent(
            id=uuid4(),
            snapshot_id=snapshot_id,
            action=action,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor_id,
            occurred_at=occurred_at,
            reviewer_notes=reviewer_notes,
            override_level_id=override_level_id,
            override_justification=override_justification,
        )
