"""PostgreSQL implementation of SnapshotRepo.

``PgSnapshotRepo`` works inside the request's session. A snapshot and
its evidence links are written inside one SAVEPOINT, so a failed pair
rolls back on its own.

``PgSnapshotRunWriter`` is what the snapshot runner writes through. The
run row, each snapshot with its links, and the final count each commit
in their own short transaction, so a retried write gets a fresh session
and one bad pair never rolls back the rest of the batch.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.errors import translate_sqlalchemy_errors
from app.db.tables import (
    ReviewEventRow,
    SnapshotEvidenceLinkRow,
    SnapshotRow,
    SnapshotRunRow,
)
from app.models.evidence import EvidenceKind
from app.models.scope import ScopeKind
from app.models.snapshot import (
    EvidenceLink,
    ReviewAction,
    ReviewEvent,
    ReviewState,
    Snapshot,
    SnapshotRun,
)
from app.repos.snapshot_repo import RunFilters
from app.services.errors import PersistenceError


class PgSnapshotRepo:
    """Satisfies the SnapshotRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_run(self, run: SnapshotRun) -> None:
        row = SnapshotRunRow(
            id=run.id,
            organization_id=run.organization_id,
            school_id=run.school_id,
            scope_type=run.scope_kind.value,
            scope_id=run.scope_id,
            school_year_id=run.school_year_id,
            quarter=run.quarter,
            term=run.term,
            snapshot_date=run.snapshot_date,
            snapshot_count=run.snapshot_count,
            created_by=run.created_by,
            created_at=run.created_at,
        )
        with translate_sqlalchemy_errors("create snapshot run"):
            self._session.add(row)
            await self._session.flush()

    async def finalize_run(
        self, run_id: UUID, snapshot_count: int, finalized_at: datetime
    ) -> SnapshotRun:
        stmt = (
            update(SnapshotRunRow)
            .where(SnapshotRunRow.id == run_id)
            .values(snapshot_count=snapshot_count, finalized_at=finalized_at)
            .returning(SnapshotRunRow)
        )
        with translate_sqlalchemy_errors("finalize snapshot run"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise PersistenceError("snapshot run not found")
        return _row_to_run(row)

    async def add_snapshot(self, snapshot: Snapshot, links: list[EvidenceLink]) -> None:
        with translate_sqlalchemy_errors("write snapshot"):
            async with self._session.begin_nested():
                self._session.add(_snapshot_to_row(snapshot))
                # parent row must exist before the links reference it
                await self._session.flush()
                self._session.add_all(
                    SnapshotEvidenceLinkRow(
                        id=link.id,
                        snapshot_id=link.snapshot_id,
                        evidence_type=link.evidence_type.value,
                        assessment_id=link.assessment_id,
                        observation_id=link.observation_id,
                        portfolio_artifact_id=link.portfolio_artifact_id,
                        lesson_log_id=link.lesson_log_id,
                        created_by=link.created_by,
                    )
                    for link in links
                )
                await self._session.flush()

    async def count_snapshots(self, run_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(SnapshotRow)
            .where(SnapshotRow.snapshot_run_id == run_id)
        )
        with translate_sqlalchemy_errors("count snapshots"):
            return (await self._session.execute(stmt)).scalar_one()

    async def get_run(self, run_id: UUID, org_id: UUID) -> SnapshotRun | None:
        stmt = select(SnapshotRunRow).where(
            SnapshotRunRow.id == run_id,
            SnapshotRunRow.organization_id == org_id,
        )
        with translate_sqlalchemy_errors("get snapshot run"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_run(row) if row is not None else None

    async def list_runs(self, org_id: UUID, filters: RunFilters) -> list[SnapshotRun]:
        stmt = select(SnapshotRunRow).where(SnapshotRunRow.organization_id == org_id)
        if filters.school_id is not None:
            stmt = stmt.where(SnapshotRunRow.school_id == filters.school_id)
        if filters.scope_kind is not None:
            stmt = stmt.where(SnapshotRunRow.scope_type == filters.scope_kind.value)
        if filters.scope_id is not None:
            stmt = stmt.where(SnapshotRunRow.scope_id == filters.scope_id)
        if filters.school_year_id is not None:
            stmt = stmt.where(SnapshotRunRow.school_year_id == filters.school_year_id)
        stmt = stmt.order_by(SnapshotRunRow.created_at.desc())
        with translate_sqlalchemy_errors("list snapshot runs"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_run(row) for row in rows]

    async def list_snapshots(self, run_id: UUID) -> list[Snapshot]:
        stmt = (
            select(SnapshotRow)
            .where(SnapshotRow.snapshot_run_id == run_id)
            .order_by(SnapshotRow.created_at)
        )
        return await self._snapshots(stmt)

    async def list_learner_snapshots(
        self, run_id: UUID, learner_id: UUID
    ) -> list[Snapshot]:
        stmt = select(SnapshotRow).where(
            SnapshotRow.snapshot_run_id == run_id,
            SnapshotRow.learner_id == learner_id,
        )
        return await self._snapshots(stmt)

    async def get_snapshot(self, snapshot_id: UUID, org_id: UUID) -> Snapshot | None:
        stmt = select(SnapshotRow).where(
            SnapshotRow.id == snapshot_id,
            SnapshotRow.organization_id == org_id,
        )
        found = await self._snapshots(stmt)
        return found[0] if found else None

    async def list_links(self, snapshot_id: UUID) -> list[EvidenceLink]:
        stmt = select(SnapshotEvidenceLinkRow).where(
            SnapshotEvidenceLinkRow.snapshot_id == snapshot_id
        )
        with translate_sqlalchemy_errors("list evidence links"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            EvidenceLink(
                id=row.id,
                snapshot_id=row.snapshot_id,
                evidence_type=EvidenceKind(row.evidence_type),
                created_by=row.created_by,
                assessment_id=row.assessment_id,
                observation_id=row.observation_id,
                portfolio_artifact_id=row.portfolio_artifact_id,
                lesson_log_id=row.lesson_log_id,
            )
            for row in rows
        ]

    async def apply_review(
        self, updated: Snapshot, expected_state: ReviewState, event: ReviewEvent
    ) -> bool:
        # compare-and-set: only the review fields change, and only if the
        # row is still in the state the caller validated against
        stmt = (
            update(SnapshotRow)
            .where(
                SnapshotRow.id == updated.id,
                SnapshotRow.review_state == expected_state.value,
            )
            .values(
                review_state=updated.review_state.value,
                reviewer_notes=updated.reviewer_notes,
                override_level_id=updated.override_level_id,
                override_justification=updated.override_justification,
                reviewed_by=updated.reviewed_by,
                reviewed_at=updated.reviewed_at,
            )
        )
        with translate_sqlalchemy_errors("apply review"):
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                return False
            self._session.add(
                ReviewEventRow(
                    id=event.id,
                    snapshot_id=event.snapshot_id,
                    action=event.action.value,
                    from_state=event.from_state.value,
                    to_state=event.to_state.value,
                    reviewer_notes=event.reviewer_notes,
                    override_level_id=event.override_level_id,
                    override_justification=event.override_justification,
                    actor_id=event.actor_id,
                    occurred_at=event.occurred_at,
                )
            )
            await self._session.flush()
        return True

    async def list_events(self, snapshot_id: UUID) -> list[ReviewEvent]:
        stmt = (
            select(ReviewEventRow)
            .where(ReviewEventRow.snapshot_id == snapshot_id)
            .order_by(ReviewEventRow.occurred_at)
        )
        with translate_sqlalchemy_errors("list review events"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            ReviewEvent(
                id=row.id,
                snapshot_id=row.snapshot_id,
                action=ReviewAction(row.action),
                from_state=ReviewState(row.from_state),
                to_state=ReviewState(row.to_state),
                actor_id=row.actor_id,
                occurred_at=row.occurred_at,
                reviewer_notes=row.reviewer_notes,
                override_level_id=row.override_level_id,
                override_justification=row.override_justification,
            )
            for row in rows
        ]

    async def list_by_state(self, org_id: UUID, state: ReviewState) -> list[Snapshot]:
        stmt = (
            select(SnapshotRow)
            .where(
                SnapshotRow.organization_id == org_id,
                SnapshotRow.review_state == state.value,
            )
            .order_by(SnapshotRow.created_at)
        )
        return await self._snapshots(stmt)

    async def _snapshots(self, stmt) -> list[Snapshot]:
        with translate_sqlalchemy_errors("read snapshots"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_snapshot(row) for row in rows]


class PgSnapshotRunWriter:
    """Satisfies SnapshotRunWriter with one transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[PgSnapshotRepo]:
        # commit failures surface here, outside the repo's own translation
        with translate_sqlalchemy_errors(operation):
            async with self._session_factory.begin() as session:
                yield PgSnapshotRepo(session)

    async def create_run(self, run: SnapshotRun) -> None:
        async with self._transaction("commit snapshot run") as repo:
            await repo.create_run(run)

    async def add_snapshot(self, snapshot: Snapshot, links: list[EvidenceLink]) -> None:
        async with self._transaction("commit snapshot") as repo:
            await repo.add_snapshot(snapshot, links)

    async def count_snapshots(self, run_id: UUID) -> int:
        async with self._transaction("count snapshots") as repo:
            return await repo.count_snapshots(run_id)

    async def finalize_run(
        self, run_id: UUID, snapshot_count: int, finalized_at: datetime
    ) -> SnapshotRun:
        async with self._transaction("commit finalized run") as repo:
            return await repo.finalize_run(run_id, snapshot_count, finalized_at)


def _row_to_run(row: SnapshotRunRow) -> SnapshotRun:
    return SnapshotRun(
        id=row.id,
        organization_id=row.organization_id,
        scope_kind=ScopeKind(row.scope_type),
        scope_id=row.scope_id,
        snapshot_date=row.snapshot_date,
        created_by=row.created_by,
        created_at=row.created_at,
        school_id=row.school_id,
        school_year_id=row.school_year_id,
        quarter=row.quarter,
        term=row.term,
        snapshot_count=row.snapshot_count,
        finalized_at=row.finalized_at,
    )


def _snapshot_to_row(snapshot: Snapshot) -> SnapshotRow:
    return SnapshotRow(
        id=snapshot.id,
        organization_id=snapshot.organization_id,
        school_id=snapshot.school_id,
        snapshot_run_id=snapshot.run_id,
        learner_id=snapshot.learner_id,
        competency_id=snapshot.competency_id,
        mastery_level_id=snapshot.mastery_level_id,
        teacher_id=snapshot.teacher_id,
        rationale_text=snapshot.rationale_text,
        evidence_count=snapshot.evidence_count,
        last_evidence_at=snapshot.last_evidence_at,
        snapshot_date=snapshot.snapshot_date,
        confirmed_at=snapshot.confirmed_at,
        confirmed_by=snapshot.confirmed_by,
        created_by=snapshot.created_by,
        created_at=snapshot.created_at,
        review_state=snapshot.review_state.value,
    )


def _row_to_snapshot(row: SnapshotRow) -> Snapshot:
    return Snapshot(
        id=row.id,
        organization_id=row.organization_id,
        run_id=row.snapshot_run_id,
        learner_id=row.learner_id,
        competency_id=row.competency_id,
        mastery_level_id=row.mastery_level_id,
        teacher_id=row.teacher_id,
        rationale_text=row.rationale_text,
        evidence_count=row.evidence_count,
        last_evidence_at=row.last_evidence_at,
        snapshot_date=row.snapshot_date,
        confirmed_at=row.confirmed_at,
        confirmed_by=row.confirmed_by,
        created_by=row.created_by,
        created_at=row.created_at,
        school_id=row.school_id,
        review_state=ReviewState(row.review_state),
        reviewer_notes=row.reviewer_notes,
        override_level_id=row.override_level_id,
        override_justification=row.override_justification,
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
    )
