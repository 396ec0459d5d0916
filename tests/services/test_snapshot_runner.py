"""Tests for the snapshot batch coordinator.

Repos are fresh in-memory instances per test; failure modes are injected
by subclassing them.
"""

from __future__ import annotations

import asyncio
import datetime
from uuid import UUID, uuid4

import pytest
from prometheus_client import REGISTRY

from app.models.mastery import LevelKind
from app.models.school import Observation, PortfolioArtifact, SchoolYear
from app.models.scope import ScopeKind
from app.models.snapshot import ReviewState
from app.repos.mastery_repo import InMemoryMasteryModelRepo
from app.repos.school_repo import InMemorySchoolDataRepo
from app.repos.snapshot_repo import InMemorySnapshotRepo, RunFilters
from app.services.errors import (
    MasteryValidationError,
    PersistenceError,
    RunPersistenceError,
    ScopeGap,
    ScopeResolutionError,
)
from app.services.snapshot_runner import (
    RunnerConfig,
    RunRequest,
    SnapshotRunCoordinator,
)
from tests.conftest import T0, seed_competencies, seed_model, seed_section

INITIATOR = uuid4()


def _clock() -> datetime.datetime:
    return T0


class FailingSnapshotRepo(InMemorySnapshotRepo):
    """Fails add_snapshot for one competency, ``failures`` times (None = always)."""

    def __init__(
        self,
        competency_id: UUID,
        *,
        transient: bool = False,
        failures: int | None = None,
    ) -> None:
        super().__init__()
        self.competency_id = competency_id
        self.transient = transient
        self.failures = failures
        self.raised = 0

    async def add_snapshot(self, snapshot, links) -> None:
        if snapshot.competency_id == self.competency_id and (
            self.failures is None or self.raised < self.failures
        ):
            self.raised += 1
            raise PersistenceError("write failed", transient=self.transient)
        await super().add_snapshot(snapshot, links)


class UnreachableRunRepo(InMemorySnapshotRepo):
    async def create_run(self, run) -> None:
        raise PersistenceError("database unavailable", transient=True)


class UnfinalizableRunRepo(InMemorySnapshotRepo):
    async def finalize_run(self, run_id, snapshot_count, finalized_at):
        raise PersistenceError("database unavailable", transient=True)


class UncountableRunRepo(InMemorySnapshotRepo):
    async def count_snapshots(self, run_id) -> int:
        raise PersistenceError("statement timeout")


class StallingEvidenceRepo(InMemorySchoolDataRepo):
    """One learner's evidence load blows up, another's never returns."""

    def __init__(self) -> None:
        super().__init__()
        self.exploding: UUID | None = None
        self.stalled: UUID | None = None
        self.stall_cancelled = False

    async def list_portfolio_artifacts(self, learner_id, org_id):
        if learner_id == self.exploding:
            raise RuntimeError("unexpected artifact payload")
        if learner_id == self.stalled:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.stall_cancelled = True
                raise
        return await super().list_portfolio_artifacts(learner_id, org_id)


class BrokenEvidenceRepo(InMemorySchoolDataRepo):
    def __init__(self, broken_learner: UUID | None = None) -> None:
        super().__init__()
        self.broken_learner = broken_learner

    async def list_portfolio_artifacts(self, learner_id, org_id):
        if learner_id == self.broken_learner:
            raise PersistenceError("portfolio store timed out", transient=True)
        return await super().list_portfolio_artifacts(learner_id, org_id)

    async def list_section_learners(self, section_id, org_id):
        if self.broken_learner is None:
            raise PersistenceError("roster unavailable")
        return await super().list_section_learners(section_id, org_id)


class World:
    """One organization with a section of learners and a mastery model."""

    def __init__(
        self,
        *,
        learners: int = 2,
        competencies: int = 3,
        school: InMemorySchoolDataRepo | None = None,
        snapshots: InMemorySnapshotRepo | None = None,
        thresholds="default",
    ) -> None:
        self.org_id = uuid4()
        self.school_id = uuid4()
        self.school = school if school is not None else InMemorySchoolDataRepo()
        self.mastery = InMemoryMasteryModelRepo()
        self.snapshots = snapshots if snapshots is not None else InMemorySnapshotRepo()
        self.section, self.learners = seed_section(
            self.school, self.org_id, learners=learners, school_id=self.school_id
        )
        self.competencies = seed_competencies(self.school, self.org_id, competencies)
        if thresholds == "default":
            self.model, self.levels = seed_model(self.mastery, self.org_id)
        else:
            self.model, self.levels = seed_model(
                self.mastery, self.org_id, thresholds
            )

    def coordinator(self, config: RunnerConfig | None = None) -> SnapshotRunCoordinator:
        return SnapshotRunCoordinator(
            school_repo=self.school,
            mastery_repo=self.mastery,
            snapshot_writer=self.snapshots,
            config=config,
            clock=_clock,
        )

    def request(self, **overrides) -> RunRequest:
        fields = {
            "scope_kind": "section",
            "scope_id": str(self.section.id),
            "mastery_model_id": str(self.model.id),
        }
        fields.update(overrides)
        return RunRequest.parse(**fields)

    def run(self, config: RunnerConfig | None = None, **overrides):
        return asyncio.run(
            self.coordinator(config).run(
                self.request(**overrides),
                org_id=self.org_id,
                initiator_id=INITIATOR,
            )
        )

    def runs(self):
        return asyncio.run(self.snapshots.list_runs(self.org_id, RunFilters()))

    def snapshots_of(self, run_id: UUID):
        return asyncio.run(self.snapshots.list_snapshots(run_id))


def _sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


# ---- happy path ----


def test_every_pair_produces_one_snapshot() -> None:
    world = World(learners=2, competencies=3)
    outcome = world.run()

    rows = world.snapshots_of(outcome.run_id)
    assert outcome.snapshot_count == 6
    assert len(rows) == outcome.snapshot_count
    assert outcome.evaluated_pairs == 6
    assert outcome.failed_pairs == 0
    assert outcome.message == "Successfully generated 6 snapshots"
    pairs = {(s.learner_id, s.competency_id) for s in rows}
    assert len(pairs) == 6


def test_snapshot_fields_from_evidence_and_initiator() -> None:
    world = World(learners=1, competencies=1)
    learner, competency = world.learners[0], world.competencies[0]
    world.school.seed(
        Observation.new(
            organization_id=world.org_id,
            learner_id=learner,
            competency_id=competency,
            created_at=T0,
        ),
        PortfolioArtifact(
            uuid4(), world.org_id, learner, T0, frozenset({competency})
        ),
    )

    outcome = world.run()
    (snapshot,) = world.snapshots_of(outcome.run_id)
    links = asyncio.run(world.snapshots.list_links(snapshot.id))

    assert snapshot.evidence_count == 2
    assert snapshot.mastery_level_id == world.levels[LevelKind.EMERGING].id
    assert snapshot.rationale_text == (
        "2 evidence items incl. 1 observation, 1 portfolio artifact"
    )
    assert snapshot.last_evidence_at == T0
    assert snapshot.review_state is ReviewState.SUBMITTED
    assert snapshot.confirmed_by == INITIATOR
    assert snapshot.teacher_id == INITIATOR
    assert snapshot.confirmed_at == T0
    assert snapshot.school_id == world.school_id
    assert len(links) == snapshot.evidence_count
    assert {link.snapshot_id for link in links} == {snapshot.id}


def test_run_record_context() -> None:
    world = World(learners=1, competencies=1)
    year = SchoolYear(uuid4(), world.org_id, "2026-27", is_active=True)
    world.school.seed(year)

    outcome = world.run(quarter="Q1", term="Fall")
    run = outcome.run

    assert run.scope_kind is ScopeKind.SECTION
    assert run.scope_id == world.section.id
    assert run.school_year_id == year.id
    assert run.school_id == world.school_id
    assert run.snapshot_date == T0.date()
    assert run.created_by == INITIATOR
    assert run.quarter == "Q1"
    assert run.term == "Fall"
    assert run.finalized_at == T0


def test_explicit_school_year_and_date_win() -> None:
    world = World(learners=1, competencies=1)
    world.school.seed(SchoolYear(uuid4(), world.org_id, "active", is_active=True))
    explicit_year = uuid4()

    run = world.run(
        school_year_id=str(explicit_year), snapshot_date="2026-12-18"
    ).run
    assert run.school_year_id == explicit_year
    assert run.snapshot_date == datetime.date(2026, 12, 18)


def test_rerun_is_append_only() -> None:
    world = World(learners=2, competencies=2)
    first = world.run()
    before = {s.id: s for s in world.snapshots_of(first.run_id)}
    second = world.run()

    assert first.run_id != second.run_id
    assert len(world.runs()) == 2
    after = {s.id: s for s in world.snapshots_of(first.run_id)}
    assert after == before
    assert not set(before) & {s.id for s in world.snapshots_of(second.run_id)}


def test_snapshot_created_metric() -> None:
    world = World(learners=1, competencies=2)
    labels = {"scope_kind": "section"}
    before = _sample("mastery_snapshots_created_total", labels)
    runs_before = _sample(
        "mastery_snapshot_runs_total", {"scope_kind": "section", "outcome": "completed"}
    )
    world.run()
    assert _sample("mastery_snapshots_created_total", labels) - before == 2
    runs_after = _sample(
        "mastery_snapshot_runs_total", {"scope_kind": "section", "outcome": "completed"}
    )
    assert runs_after - runs_before == 1


# ---- "none" classifications ----


def test_model_without_thresholds_creates_empty_run() -> None:
    world = World(learners=2, competencies=2, thresholds=None)
    outcome = world.run()

    assert outcome.snapshot_count == 0
    assert outcome.unclassified_pairs == 4
    assert outcome.failed_pairs == 0
    assert len(world.runs()) == 1


# ---- rejected before any run exists ----


def test_unknown_mastery_model_rejected_without_run() -> None:
    world = World()
    with pytest.raises(MasteryValidationError) as exc_info:
        world.run(mastery_model_id=str(uuid4()))
    assert exc_info.value.fields == {"mastery_model_id": "not found"}
    assert world.runs() == []


def test_model_from_another_org_is_unknown() -> None:
    world = World()
    other = World()
    with pytest.raises(MasteryValidationError):
        asyncio.run(
            world.coordinator().run(
                world.request(mastery_model_id=str(other.model.id)),
                org_id=world.org_id,
                initiator_id=INITIATOR,
            )
        )


def test_empty_scope_rejected_without_run() -> None:
    world = World()
    with pytest.raises(ScopeResolutionError) as exc_info:
        world.run(scope_id=str(uuid4()))
    assert exc_info.value.gap is ScopeGap.NO_LEARNERS
    assert world.runs() == []


def test_resolution_failure_is_reported_as_scope_error() -> None:
    world = World(school=BrokenEvidenceRepo())
    with pytest.raises(ScopeResolutionError) as exc_info:
        world.run()
    assert exc_info.value.gap is ScopeGap.RESOLUTION_FAILED
    assert world.runs() == []


def test_run_creation_failure_is_fatal() -> None:
    world = World(snapshots=UnreachableRunRepo())
    with pytest.raises(RunPersistenceError):
        world.run()


@pytest.mark.parametrize("repo_cls", [UnfinalizableRunRepo, UncountableRunRepo])
def test_finalize_failure_is_fatal(repo_cls) -> None:
    world = World(learners=2, competencies=3, snapshots=repo_cls())
    labels = {"scope_kind": "section", "outcome": "failed"}
    before = _sample("mastery_snapshot_runs_total", labels)

    with pytest.raises(RunPersistenceError, match="Failed to finalize snapshot run"):
        world.run()

    assert _sample("mastery_snapshot_runs_total", labels) - before == 1
    # written snapshots stay behind an unfinalized run
    [run] = world.runs()
    assert run.finalized_at is None
    assert run.snapshot_count == 0
    assert len(world.snapshots_of(run.id)) == 6


def test_unexpected_worker_error_cancels_and_finalizes() -> None:
    school = StallingEvidenceRepo()
    world = World(learners=3, competencies=2, school=school)
    school.stalled, school.exploding = world.learners[1], world.learners[2]
    labels = {"scope_kind": "section", "outcome": "failed"}
    before = _sample("mastery_snapshot_runs_total", labels)

    with pytest.raises(RuntimeError, match="unexpected artifact payload"):
        world.run()

    assert school.stall_cancelled is True
    [run] = world.runs()
    rows = world.snapshots_of(run.id)
    assert run.finalized_at == T0
    assert run.snapshot_count == len(rows)
    assert {s.learner_id for s in rows} <= {world.learners[0]}
    assert _sample("mastery_snapshot_runs_total", labels) - before == 1


# ---- partial failure ----


def test_pair_write_failure_skips_pair_and_continues() -> None:
    world = World(learners=3, competencies=2)
    world.snapshots = FailingSnapshotRepo(world.competencies[0])
    before = _sample("mastery_pair_failures_total", {"stage": "persist"})

    outcome = world.run()

    rows = world.snapshots_of(outcome.run_id)
    assert outcome.failed_pairs == 3
    assert outcome.snapshot_count == 3
    assert len(rows) == outcome.snapshot_count
    assert {s.competency_id for s in rows} == {world.competencies[1]}
    assert outcome.snapshot_count + outcome.failed_pairs <= 3 * 2
    assert _sample("mastery_pair_failures_total", {"stage": "persist"}) - before == 3


def test_permanent_failure_is_not_retried() -> None:
    world = World(learners=1, competencies=1)
    world.snapshots = FailingSnapshotRepo(world.competencies[0])
    world.run(RunnerConfig(write_attempts=3, retry_wait_seconds=0))
    assert world.snapshots.raised == 1


def test_transient_failure_is_retried() -> None:
    world = World(learners=2, competencies=2)
    world.snapshots = FailingSnapshotRepo(
        world.competencies[0], transient=True, failures=1
    )

    outcome = world.run(RunnerConfig(write_attempts=3, retry_wait_seconds=0))

    assert world.snapshots.raised == 1
    assert outcome.failed_pairs == 0
    assert outcome.snapshot_count == 4


def test_transient_failure_gives_up_after_attempts() -> None:
    world = World(learners=1, competencies=2)
    world.snapshots = FailingSnapshotRepo(world.competencies[0], transient=True)

    outcome = world.run(RunnerConfig(write_attempts=3, retry_wait_seconds=0))

    assert world.snapshots.raised == 3
    assert outcome.failed_pairs == 1
    assert outcome.snapshot_count == 1


def test_evidence_load_failure_fails_that_learners_pairs() -> None:
    school = BrokenEvidenceRepo()
    world = World(learners=2, competencies=3, school=school)
    school.broken_learner = world.learners[0]

    outcome = world.run()

    rows = world.snapshots_of(outcome.run_id)
    assert outcome.failed_pairs == 3
    assert outcome.snapshot_count == 3
    assert {s.learner_id for s in rows} == {world.learners[1]}


# ---- concurrency and deadline ----


def test_bounded_pool_processes_every_learner() -> None:
    world = World(learners=10, competencies=2)
    outcome = world.run(RunnerConfig(max_workers=3))
    assert outcome.snapshot_count == 20
    assert len(world.snapshots_of(outcome.run_id)) == 20


def test_deadline_stops_new_pairs_but_finalizes() -> None:
    world = World(learners=3, competencies=2)
    outcome = world.run(RunnerConfig(timeout_seconds=1e-9))

    assert outcome.deadline_exceeded
    assert outcome.snapshot_count == len(world.snapshots_of(outcome.run_id))
    assert outcome.snapshot_count < 6
    assert outcome.run.finalized_at == T0


# ---- request validation ----


def test_parse_reports_every_missing_field() -> None:
    with pytest.raises(MasteryValidationError) as exc_info:
        RunRequest.parse(scope_kind=None, scope_id=None, mastery_model_id=None)
    assert set(exc_info.value.fields) == {
        "scope_kind",
        "scope_id",
        "mastery_model_id",
    }


def test_parse_rejects_unsupported_scope_kind() -> None:
    with pytest.raises(MasteryValidationError) as exc_info:
        RunRequest.parse(
            scope_kind="district", scope_id=str(uuid4()), mastery_model_id=str(uuid4())
        )
    assert "must be one of" in exc_info.value.fields["scope_kind"]


def test_parse_rejects_malformed_values() -> None:
    with pytest.raises(MasteryValidationError) as exc_info:
        RunRequest.parse(
            scope_kind="section",
            scope_id="not-a-uuid",
            mastery_model_id=str(uuid4()),
            snapshot_date="18/10/2026",
        )
    assert exc_info.value.fields == {
        "scope_id": "must be a UUID",
        "snapshot_date": "must be an ISO date (YYYY-MM-DD)",
    }


def test_parse_accepts_all_scope_kinds() -> None:
    for kind in ScopeKind:
        request = RunRequest.parse(
            scope_kind=kind.value, scope_id=uuid4(), mastery_model_id=uuid4()
        )
        assert request.scope.kind is kind
