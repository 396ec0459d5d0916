"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Two groups of tables live here:

- Engine-owned (mastery models/levels, runs, snapshots, evidence links,
  review events).  Created and migrated by alembic.
- School records owned by other services.  Mapped read-only and tagged
  ``info={"owned_by": "sis"}`` so alembic/env.py leaves them out of
  autogenerate.
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

_SIS = {"info": {"owned_by": "sis"}}


# --- Mastery catalog ---


class MasteryModelRow(Base):
    __tablename__ = "mastery_models"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # all four NULL means "no thresholds configured"
    threshold_emerging: Mapped[int | None] = mapped_column(Integer, nullable=True)
    threshold_developing: Mapped[int | None] = mapped_column(Integer, nullable=True)
    threshold_proficient: Mapped[int | None] = mapped_column(Integer, nullable=True)
    threshold_mastered: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class MasteryLevelRow(Base):
    __tablename__ = "mastery_levels"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    mastery_model_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("mastery_models.id"), nullable=False
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )  # not_started|emerging|developing|proficient|mastered
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


# --- Snapshot runs and snapshots ---


class SnapshotRunRow(Base):
    __tablename__ = "mastery_snapshot_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    scope_type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # experience|syllabus|program|section
    scope_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    school_year_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    quarter: Mapped[str | None] = mapped_column(String(32), nullable=True)
    term: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snapshot_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    snapshot_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    finalized_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_snapshot_runs_org_created", "organization_id", "created_at"),
    )


class SnapshotRow(Base):
    __tablename__ = "mastery_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    snapshot_run_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("mastery_snapshot_runs.id"),
        nullable=True,
        index=True,
    )
    learner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    competency_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    mastery_level_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("mastery_levels.id"), nullable=False
    )
    teacher_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    rationale_text: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_count: Mapped[int] = mapped_column(Integer, nullable=False)
    last_evidence_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    snapshot_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    confirmed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    confirmed_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    # --- review fields (mirror the latest review event) ---
    review_state: Mapped[str] = mapped_column(
        String(32), nullable=False, default="submitted"
    )  # draft|submitted|approved|changes_requested|overridden
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_level_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("mastery_levels.id"), nullable=True
    )
    override_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    reviewed_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_mastery_snapshots_org_state", "organization_id", "review_state"),
    )


class SnapshotEvidenceLinkRow(Base):
    __tablename__ = "mastery_snapshot_evidence_links"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    snapshot_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("mastery_snapshots.id"),
        nullable=False,
        index=True,
    )
    evidence_type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # assessment|observation|lesson_log|portfolio_artifact
    assessment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    observation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    portfolio_artifact_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    lesson_log_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )  # the learner verification, not the log itself
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "num_nonnulls(assessment_id, observation_id,"
            " portfolio_artifact_id, lesson_log_id) = 1",
            name="ck_evidence_link_exactly_one_source",
        ),
    )


class ReviewEventRow(Base):
    """Append-only: rows are inserted, never updated."""

    __tablename__ = "mastery_review_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    snapshot_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("mastery_snapshots.id"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    from_state: Mapped[str] = mapped_column(String(32), nullable=False)
    to_state: Mapped[str] = mapped_column(String(32), nullable=False)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_level_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    override_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    occurred_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


# --- School records (read-only, owned by other services) ---


class CompetencyRow(Base):
    __tablename__ = "competencies"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    name: Mapped[str] = mapped_column(Text)
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SchoolYearRow(Base):
    __tablename__ = "school_years"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    label: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)


class SectionRow(Base):
    __tablename__ = "sections"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    program_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SectionStudentRow(Base):
    __tablename__ = "section_students"
    __table_args__ = _SIS

    section_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ExperienceRow(Base):
    __tablename__ = "experiences"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )


class ExperienceCompetencyLinkRow(Base):
    __tablename__ = "experience_competency_links"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    experience_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    competency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SyllabusWeekRow(Base):
    __tablename__ = "syllabus_weeks"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    syllabus_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SyllabusWeekCompetencyLinkRow(Base):
    __tablename__ = "syllabus_week_competency_links"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    syllabus_week_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    competency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ObservationRow(Base):
    __tablename__ = "observations"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    learner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    competency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    experience_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    status: Mapped[str] = mapped_column(String(32))  # active|retired
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class AssessmentRow(Base):
    __tablename__ = "assessments"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    learner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    status: Mapped[str] = mapped_column(String(32))  # draft|completed
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class AssessmentEvidenceLinkRow(Base):
    __tablename__ = "assessment_evidence_links"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    assessment_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    evidence_type: Mapped[str] = mapped_column(String(32))
    observation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    experience_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class LessonLogRow(Base):
    __tablename__ = "weekly_lesson_logs"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    syllabus_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class LessonLogVerificationRow(Base):
    __tablename__ = "weekly_lesson_log_learner_verifications"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    lesson_log_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    learner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    accomplished_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PortfolioArtifactRow(Base):
    __tablename__ = "portfolio_artifacts"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PortfolioArtifactTagRow(Base):
    __tablename__ = "portfolio_artifact_tags"
    __table_args__ = _SIS

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    artifact_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    competency_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
