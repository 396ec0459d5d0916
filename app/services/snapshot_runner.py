"""Snapshot batch runs: scope -> learners x competencies -> snapshots.

One call to SnapshotRunCoordinator.run() is one batch:

  1. validate the request (RunRequest.parse) and load the mastery model
  2. resolve school context (school year defaults to the active one)
  3. resolve the scope; an empty scope aborts before any run row exists
  4. create the SnapshotRun (count 0)
  5. for every learner, load their evidence once, then for every
     competency: pair -> classify -> write snapshot + evidence links
  6. finalize the run with a count query over what was actually written

Learners are processed by a bounded pool of workers.  Loading and
classification run concurrently; writes go through a single lock, one
snapshot and its links per transaction.  A pair that fails to write is
retried while the failure is transient, then logged and skipped.  The
batch always continues and always finalizes; if a worker raises
something unexpected, the other workers are cancelled and the run is
finalized with what was written before the error propagates.

When a deadline is configured, pairs that have not started by then are
left out and the outcome is flagged ``deadline_exceeded``.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings
from app.core.metrics import (
    PAIR_FAILURES,
    RUN_DURATION,
    SNAPSHOT_RUNS,
    SNAPSHOTS_CREATED,
    UNCLASSIFIED_PAIRS,
)
from app.models.mastery import MasteryLevel, MasteryModel
from app.models.scope import Scope, ScopeKind
from app.models.snapshot import EvidenceLink, ReviewState, Snapshot, SnapshotRun
from app.repos.mastery_repo import MasteryModelRepo
from app.repos.school_repo import SchoolDataRepo
from app.repos.snapshot_repo import SnapshotRunWriter
from app.services.errors import (
    MasteryValidationError,
    PersistenceError,
    RunPersistenceError,
    ScopeGap,
    ScopeResolutionError,
)
from app.services.evidence_collector import EvidenceCollector, LearnerEvidence
from app.services.mastery_classifier import build_rationale, classify_aggregate
from app.services.scope_resolver import ScopeResolver

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


# ---------------------------------------------------------------------------
# Request / config / outcome
# ---------------------------------------------------------------------------


def _parse_uuid(value, name: str, errors: dict[str, str]) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        errors[name] = "must be a UUID"
        return None


@dataclass(frozen=True, slots=True)
class RunRequest:
    scope: Scope
    mastery_model_id: UUID
    school_year_id: UUID | None = None
    quarter: str | None = None
    term: str | None = None
    snapshot_date: datetime.date | None = None

    @staticmethod
    def parse(
        *,
        scope_kind: str | None,
        scope_id,
        mastery_model_id,
        school_year_id=None,
        quarter: str | None = None,
        term: str | None = None,
        snapshot_date: datetime.date | str | None = None,
    ) -> RunRequest:
        """Validate raw request fields.  Raises MasteryValidationError
        listing every bad field at once."""
        errors: dict[str, str] = {}

        kind: ScopeKind | None = None
        if not scope_kind:
            errors["scope_kind"] = "is required"
        else:
            try:
                kind = ScopeKind(scope_kind)
            except ValueError:
                allowed = ", ".join(k.value for k in ScopeKind)
                errors["scope_kind"] = f"must be one of: {allowed}"

        sid = _parse_uuid(scope_id, "scope_id", errors)
        if sid is None and "scope_id" not in errors:
            errors["scope_id"] = "is required"
        model_id = _parse_uuid(mastery_model_id, "mastery_model_id", errors)
        if model_id is None and "mastery_model_id" not in errors:
            errors["mastery_model_id"] = "is required"
        year_id = _parse_uuid(school_year_id, "school_year_id", errors)

        parsed_date: datetime.date | None = None
        if isinstance(snapshot_date, str) and snapshot_date:
            try:
                parsed_date = datetime.date.fromisoformat(snapshot_date)
            except ValueError:
                errors["snapshot_date"] = "must be an ISO date (YYYY-MM-DD)"
        elif isinstance(snapshot_date, datetime.date):
            parsed_date = snapshot_date

        if errors:
            raise MasteryValidationError(errors)
        assert kind is not None and sid is not None and model_id is not None
        return RunRequest(
            scope=Scope(kind=kind, id=sid),
            mastery_model_id=model_id,
            school_year_id=year_id,
            quarter=quarter or None,
            term=term or None,
            snapshot_date=parsed_date,
        )


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    max_workers: int = 4
    timeout_seconds: float | None = None
    write_attempts: int = 3
    retry_wait_seconds: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> RunnerConfig:
        return cls(
            max_workers=settings.snapshot_max_workers,
            timeout_seconds=settings.snapshot_run_timeout_seconds,
            write_attempts=settings.snapshot_write_attempts,
            retry_wait_seconds=settings.snapshot_retry_wait_seconds,
        )


@dataclass(frozen=True, slots=True)
class RunOutcome:
    run: SnapshotRun
    evaluated_pairs: int
    unclassified_pairs: int
    failed_pairs: int
    deadline_exceeded: bool = False

    @property
    def run_id(self) -> UUID:
        return self.run.id

    @property
    def snapshot_count(self) -> int:
        return self.run.snapshot_count

    @property
    def message(self) -> str:
        return f"Successfully generated {self.snapshot_count} snapshots"


@dataclass
class _Tally:
    # mutated only from the event loop thread, no lock needed
    evaluated: int = 0
    unclassified: int = 0
    failed: int = 0
    deadline_hit: bool = False


@dataclass(frozen=True, slots=True)
class _RunContext:
    run: SnapshotRun
    model: MasteryModel
    levels: list[MasteryLevel]
    competency_ids: tuple[UUID, ...]
    initiator_id: UUID
    deadline: float | None
    tally: _Tally = field(default_factory=_Tally)

    def past_deadline(self) -> bool:
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.tally.deadline_hit = True
        return self.tally.deadline_hit


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, PersistenceError) and exc.transient


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class SnapshotRunCoordinator:
    def __init__(
        self,
        *,
        school_repo: SchoolDataRepo,
        mastery_repo: MasteryModelRepo,
        snapshot_writer: SnapshotRunWriter,
        config: RunnerConfig | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._school = school_repo
        self._mastery = mastery_repo
        self._snapshots = snapshot_writer
        self._config = config or RunnerConfig()
        self._clock = clock
        self._resolver = ScopeResolver(school_repo)
        self._collector = EvidenceCollector(school_repo)
        self._write_lock = asyncio.Lock()

    async def run(
        self, request: RunRequest, *, org_id: UUID, initiator_id: UUID
    ) -> RunOutcome:
        started = time.monotonic()
        scope = request.scope
        log_extra = {"scope_kind": scope.kind.value, "scope_id": str(scope.id)}

        model = await self._mastery.get_model(request.mastery_model_id, org_id)
        if model is None:
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="rejected").inc()
            raise MasteryValidationError({"mastery_model_id": "not found"})
        levels = await self._mastery.list_levels(model.id)

        school_year_id = request.school_year_id
        if school_year_id is None:
            active = await self._school.get_active_school_year(org_id)
            school_year_id = active.id if active else None
        school_id = await self._school.get_scope_school(scope.kind, scope.id, org_id)

        try:
            resolution = await self._resolver.resolve(scope, org_id)
        except PersistenceError as e:
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="failed").inc()
            logger.exception("Scope resolution failed", extra=log_extra)
            raise ScopeResolutionError(
                scope.kind.value,
                ScopeGap.RESOLUTION_FAILED,
                "Failed to resolve learners and competencies for this scope",
            ) from e
        if resolution.gap is not None:
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="rejected").inc()
            raise ScopeResolutionError(
                scope.kind.value, resolution.gap, resolution.message or ""
            )

        now = self._clock()
        run = SnapshotRun.new(
            organization_id=org_id,
            scope_kind=scope.kind,
            scope_id=scope.id,
            snapshot_date=request.snapshot_date or now.date(),
            created_by=initiator_id,
            created_at=now,
            school_id=school_id,
            school_year_id=school_year_id,
            quarter=request.quarter,
            term=request.term,
        )
        try:
            await self._snapshots.create_run(run)
        except PersistenceError as e:
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="failed").inc()
            logger.exception("Could not create snapshot run", extra=log_extra)
            raise RunPersistenceError("Failed to create snapshot run") from e

        log_extra["run_id"] = str(run.id)
        logger.info(
            "Snapshot run started: %d learners x %d competencies",
            len(resolution.learner_ids),
            len(resolution.competency_ids),
            extra=log_extra,
        )

        timeout = self._config.timeout_seconds
        ctx = _RunContext(
            run=run,
            model=model,
            levels=levels,
            competency_ids=resolution.competency_ids,
            initiator_id=initiator_id,
            deadline=started + timeout if timeout else None,
        )
        pool = asyncio.Semaphore(self._config.max_workers)

        async def _worker(learner_id: UUID) -> None:
            async with pool:
                await self._process_learner(ctx, learner_id)

        tasks = [asyncio.create_task(_worker(lid)) for lid in resolution.learner_ids]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            # wait until no worker holds the write lock before counting
            await asyncio.gather(*tasks, return_exceptions=True)
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="failed").inc()
            logger.exception("Snapshot run aborted", extra=log_extra)
            try:
                await self._finalize(run.id)
            except PersistenceError:
                logger.exception(
                    "Could not finalize aborted snapshot run", extra=log_extra
                )
            raise

        try:
            run = await self._finalize(run.id)
        except PersistenceError as e:
            SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome="failed").inc()
            logger.exception("Could not finalize snapshot run", extra=log_extra)
            raise RunPersistenceError("Failed to finalize snapshot run") from e

        tally = ctx.tally
        if tally.deadline_hit:
            logger.warning(
                "Snapshot run hit its deadline after %d of %d pairs",
                tally.evaluated,
                resolution.pair_count,
                extra=log_extra,
            )
        outcome = "deadline_exceeded" if tally.deadline_hit else "completed"
        SNAPSHOT_RUNS.labels(scope_kind=scope.kind.value, outcome=outcome).inc()
        elapsed = time.monotonic() - started
        RUN_DURATION.observe(elapsed)
        logger.info(
            "Snapshot run finished in %.2fs: %d snapshots, %d unclassified, "
            "%d failed",
            elapsed,
            run.snapshot_count,
            tally.unclassified,
            tally.failed,
            extra=log_extra,
        )
        return RunOutcome(
            run=run,
            evaluated_pairs=tally.evaluated,
            unclassified_pairs=tally.unclassified,
            failed_pairs=tally.failed,
            deadline_exceeded=tally.deadline_hit,
        )

    async def _finalize(self, run_id: UUID) -> SnapshotRun:
        count = await self._snapshots.count_snapshots(run_id)
        return await self._snapshots.finalize_run(run_id, count, self._clock())

    async def _process_learner(self, ctx: _RunContext, learner_id: UUID) -> None:
        if ctx.past_deadline():
            return
        run = ctx.run
        try:
            evidence = await self._collector.load_learner(
                learner_id, Scope(run.scope_kind, run.scope_id), run.organization_id
            )
        except PersistenceError:
            failed = len(ctx.competency_ids)
            ctx.tally.failed += failed
            PAIR_FAILURES.labels(stage="evidence").inc(failed)
            logger.warning(
                "Could not load evidence, skipping %d pairs",
                failed,
                exc_info=True,
                extra={"run_id": str(run.id), "learner_id": str(learner_id)},
            )
            return

        for competency_id in ctx.competency_ids:
            if ctx.past_deadline():
                return
            await self._process_pair(ctx, evidence, competency_id)

    async def _process_pair(
        self, ctx: _RunContext, evidence: LearnerEvidence, competency_id: UUID
    ) -> None:
        run = ctx.run
        ctx.tally.evaluated += 1
        aggregate = evidence.for_competency(competency_id)
        level_id = classify_aggregate(aggregate, ctx.model.thresholds, ctx.levels)
        if level_id is None:
            ctx.tally.unclassified += 1
            UNCLASSIFIED_PAIRS.inc()
            return

        now = self._clock()
        snapshot = Snapshot(
            id=uuid4(),
            organization_id=run.organization_id,
            run_id=run.id,
            learner_id=evidence.learner_id,
            competency_id=competency_id,
            mastery_level_id=level_id,
            teacher_id=ctx.initiator_id,
            rationale_text=build_rationale(aggregate),
            evidence_count=aggregate.count,
            last_evidence_at=aggregate.last_evidence_at,
            snapshot_date=run.snapshot_date,
            # the initiator stands behind the automated result until reviewed
            confirmed_at=now,
            confirmed_by=ctx.initiator_id,
            created_by=ctx.initiator_id,
            created_at=now,
            school_id=run.school_id,
            review_state=ReviewState.SUBMITTED,
        )
        links = [
            EvidenceLink.for_item(
                snapshot_id=snapshot.id, item=item, created_by=ctx.initiator_id
            )
            for item in aggregate.items
        ]

        try:
            async with self._write_lock:
                await self._write(snapshot, links)
        except PersistenceError:
            ctx.tally.failed += 1
            PAIR_FAILURES.labels(stage="persist").inc()
            logger.warning(
                "Snapshot write failed, pair skipped",
                exc_info=True,
                extra={
                    "run_id": str(run.id),
                    "learner_id": str(evidence.learner_id),
                    "competency_id": str(competency_id),
                },
            )
            return
        SNAPSHOTS_CREATED.labels(scope_kind=run.scope_kind.value).inc()

    async def _write(self, snapshot: Snapshot, links: list[EvidenceLink]) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.write_attempts),
            wait=wait_exponential(multiplier=self._config.retry_wait_seconds, max=10),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                await self._snapshots.add_snapshot(snapshot, links)
