"""create mastery tables

Revision ID: 3b7e9d21c4a0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e9d21c4a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UUID = postgresql.UUID(as_uuid=True)
_TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "mastery_models",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("organization_id", _UUID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("threshold_emerging", sa.Integer(), nullable=True),
        sa.Column("threshold_developing", sa.Integer(), nullable=True),
        sa.Column("threshold_proficient", sa.Integer(), nullable=True),
        sa.Column("threshold_mastered", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index(
        "ix_mastery_models_organization_id", "mastery_models", ["organization_id"]
    )

    op.create_table(
        "mastery_levels",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "mastery_model_id",
            _UUID,
            sa.ForeignKey("mastery_models.id"),
            nullable=False,
        ),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("archived_at", _TS, nullable=True),
    )

    op.create_table(
        "mastery_snapshot_runs",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("organization_id", _UUID, nullable=False),
        sa.Column("school_id", _UUID, nullable=True),
        sa.Column("scope_type", sa.String(length=32), nullable=False),
        sa.Column("scope_id", _UUID, nullable=False),
        sa.Column("school_year_id", _UUID, nullable=True),
        sa.Column("quarter", sa.String(length=32), nullable=True),
        sa.Column("term", sa.String(length=64), nullable=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("snapshot_count", sa.Integer(), nullable=False),
        sa.Column("created_by", _UUID, nullable=False),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("finalized_at", _TS, nullable=True),
    )
    op.create_index(
        "ix_snapshot_runs_org_created",
        "mastery_snapshot_runs",
        ["organization_id", "created_at"],
    )

    op.create_table(
        "mastery_snapshots",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("organization_id", _UUID, nullable=False),
        sa.Column("school_id", _UUID, nullable=True),
        sa.Column(
            "snapshot_run_id",
            _UUID,
            sa.ForeignKey("mastery_snapshot_runs.id"),
            nullable=True,
        ),
        sa.Column("learner_id", _UUID, nullable=False),
        sa.Column("competency_id", _UUID, nullable=False),
        sa.Column(
            "mastery_level_id",
            _UUID,
            sa.ForeignKey("mastery_levels.id"),
            nullable=False,
        ),
        sa.Column("teacher_id", _UUID, nullable=False),
        sa.Column("rationale_text", sa.Text(), nullable=False),
        sa.Column("evidence_count", sa.Integer(), nullable=False),
        sa.Column("last_evidence_at", _TS, nullable=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("confirmed_at", _TS, nullable=False),
        sa.Column("confirmed_by", _UUID, nullable=False),
        sa.Column("created_by", _UUID, nullable=False),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("review_state", sa.String(length=32), nullable=False),
        sa.Column("reviewer_notes", sa.Text(), nullable=True),
        sa.Column(
            "override_level_id",
            _UUID,
            sa.ForeignKey("mastery_levels.id"),
            nullable=True,
        ),
        sa.Column("override_justification", sa.Text(), nullable=True),
        sa.Column("reviewed_by", _UUID, nullable=True),
        sa.Column("reviewed_at", _TS, nullable=True),
    )
    op.create_index(
        "ix_mastery_snapshots_snapshot_run_id",
        "mastery_snapshots",
        ["snapshot_run_id"],
    )
    op.create_index(
        "ix_mastery_snapshots_org_state",
        "mastery_snapshots",
        ["organization_id", "review_state"],
    )

    op.create_table(
        "mastery_snapshot_evidence_links",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "snapshot_id",
            _UUID,
            sa.ForeignKey("mastery_snapshots.id"),
            nullable=False,
        ),
        sa.Column("evidence_type", sa.String(length=32), nullable=False),
        sa.Column("assessment_id", _UUID, nullable=True),
        sa.Column("observation_id", _UUID, nullable=True),
        sa.Column("portfolio_artifact_id", _UUID, nullable=True),
        sa.Column("lesson_log_id", _UUID, nullable=True),
        sa.Column("created_by", _UUID, nullable=False),
        sa.CheckConstraint(
            "num_nonnulls(assessment_id, observation_id,"
            " portfolio_artifact_id, lesson_log_id) = 1",
            name="ck_evidence_link_exactly_one_source",
        ),
    )
    op.create_index(
        "ix_mastery_snapshot_evidence_links_snapshot_id",
        "mastery_snapshot_evidence_links",
        ["snapshot_id"],
    )

    op.create_table(
        "mastery_review_events",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "snapshot_id",
            _UUID,
            sa.ForeignKey("mastery_snapshots.id"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("from_state", sa.String(length=32), nullable=False),
        sa.Column("to_state", sa.String(length=32), nullable=False),
        sa.Column("reviewer_notes", sa.Text(), nullable=True),
        sa.Column("override_level_id", _UUID, nullable=True),
        sa.Column("override_justification", sa.Text(), nullable=True),
        sa.Column("actor_id", _UUID, nullable=False),
        sa.Column("occurred_at", _TS, nullable=False),
    )
    op.create_index(
        "ix_mastery_review_events_snapshot_id",
        "mastery_review_events",
        ["snapshot_id"],
    )


def downgrade() -> None:
    op.drop_table("mastery_review_events")
    op.drop_table("mastery_snapshot_evidence_links")
    op.drop_table("mastery_snapshots")
    op.drop_table("mastery_snapshot_runs")
    op.drop_table("mastery_levels")
    op.drop_table("mastery_models")
