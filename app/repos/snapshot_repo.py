from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from app.models.scope import ScopeKind
from app.models.snapshot import (
    EvidenceLink,
    ReviewEvent,
    ReviewState,
    Snapshot,
    SnapshotRun,
)
from app.services.errors import PersistenceError


@dataclass(frozen=True, slots=True)
class RunFilters:
    school_id: UUID | None = None
    scope_kind: ScopeKind | None = None
    scope_id: UUID | None = None
    school_year_id: UUID | None = None

    def matches(self, run: SnapshotRun) -> bool:
        return (
            (self.school_id is None or run.school_id == self.school_id)
            and (self.scope_kind is None or run.scope_kind == self.scope_kind)
            and (self.scope_id is None or run.scope_id == self.scope_id)
            and (
                self.school_year_id is None
                or run.school_year_id == self.school_year_id
            )
        )


class SnapshotRunWriter(Protocol):
    """The writes a snapshot run makes."""

    async def create_run(self, run: SnapshotRun) -> None: ...
    async def finalize_run(
        self, run_id: UUID, snapshot_count: int, finalized_at: datetime
    ) -> SnapshotRun: ...
    async def add_snapshot(
        self, snapshot: Snapshot, links: list[EvidenceLink]
    ) -> None: ...
    async def count_snapshots(self, run_id: UUID) -> int: ...


class SnapshotRepo(SnapshotRunWriter, Protocol):
    async def get_run(self, run_id: UUID, org_id: UUID) -> SnapshotRun | None: ...
    async def list_runs(
        self, org_id: UUID, filters: RunFilters
    ) -> list[SnapshotRun]: ...
    async def list_snapshots(self, run_id: UUID) -> list[Snapshot]: ...
    async def list_learner_snapshots(
        self, run_id: UUID, learner_id: UUID
    ) -> list[Snapshot]: ...
    async def get_snapshot(
        self, snapshot_id: UUID, org_id: UUID
    ) -> Snapshot | None: ...
    async def list_links(self, snapshot_id: UUID) -> list[EvidenceLink]: ...
    async def apply_review(
        self, updated: Snapshot, expected_state: ReviewState, event: ReviewEvent
    ) -> bool: ...
    async def list_events(self, snapshot_id: UUID) -> list[ReviewEvent]: ...
    async def list_by_state(
        self, org_id: UUID, state: ReviewState
    ) -> list[Snapshot]: ...


class InMemorySnapshotRepo:
    def __init__(self) -> None:
        self._runs: dict[UUID, SnapshotRun] = {}
        self._snapshots: dict[UUID, Snapshot] = {}
        self._links: dict[UUID, list[EvidenceLink]] = {}
        self._events: dict[UUID, list[ReviewEvent]] = {}

    def clear(self) -> None:
        self._runs.clear()
        self._snapshots.clear()
        self._links.clear()
        self._events.clear()

    async def create_run(self, run: SnapshotRun) -> None:
        if run.id in self._runs:
            raise PersistenceError("snapshot run already exists")
        self._runs[run.id] = run

    async def finalize_run(
        self, run_id: UUID, snapshot_count: int, finalized_at: datetime
    ) -> SnapshotRun:
        run = self._runs.get(run_id)
        if run is None:
            raise PersistenceError("snapshot run not found")
        updated = replace(
            run, snapshot_count=snapshot_count, finalized_at=finalized_at
        )
        self._runs[run_id] = updated
        return updated

    async def add_snapshot(self, snapshot: Snapshot, links: list[EvidenceLink]) -> None:
        # all-or-nothing: validate before touching the store
        if snapshot.id in self._snapshots:
            raise PersistenceError("snapshot already exists")
        if any(link.snapshot_id != snapshot.id for link in links):
            raise PersistenceError("evidence link references another snapshot")
        self._snapshots[snapshot.id] = snapshot
        self._links[snapshot.id] = list(links)
        self._events[snapshot.id] = []

    async def count_snapshots(self, run_id: UUID) -> int:
        return sum(1 for s in self._snapshots.values() if s.run_id == run_id)

    async def get_run(self, run_id: UUID, org_id: UUID) -> SnapshotRun | None:
        run = self._runs.get(run_id)
        if run is None or run.organization_id != org_id:
            return None
        return run

    async def list_runs(self, org_id: UUID, filters: RunFilters) -> list[SnapshotRun]:
        runs = [
            r
            for r in self._runs.values()
            if r.organization_id == org_id and filters.matches(r)
        ]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    async def list_snapshots(self, run_id: UUID) -> list[Snapshot]:
        return [s for s in self._snapshots.values() if s.run_id == run_id]

    async def list_learner_snapshots(
        self, run_id: UUID, learner_id: UUID
    ) -> list[Snapshot]:
        return [
            s
            for s in self._snapshots.values()
            if s.run_id == run_id and s.learner_id == learner_id
        ]

    async def get_snapshot(self, snapshot_id: UUID, org_id: UUID) -> Snapshot | None:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None or snapshot.organization_id != org_id:
            return None
        return snapshot

    async def list_links(self, snapshot_id: UUID) -> list[EvidenceLink]:
        return list(self._links.get(snapshot_id, []))

    async def apply_review(
        self, updated: Snapshot, expected_state: ReviewState, event: ReviewEvent
    ) -> bool:
        current = self._snapshots.get(updated.id)
        if current is None or current.review_state != expected_state:
            return False
        self._snapshots[updated.id] = updated
        self._events[updated.id].append(event)
        return True

    async def list_events(self, snapshot_id: UUID) -> list[ReviewEvent]:
        return list(self._events.get(snapshot_id, []))

    async def list_by_state(self, org_id: UUID, state: ReviewState) -> list[Snapshot]:
        matches = [
            s
            for s in self._snapshots.values()
            if s.organization_id == org_id and s.review_state == state
        ]
        return sorted(matches, key=lambda s: s.created_at)
