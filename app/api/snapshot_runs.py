"""Snapshot run endpoints.

  POST /v1/mastery/snapshot-runs                      trigger a batch
  GET  /v1/mastery/snapshot-runs                      list runs (filters)
  GET  /v1/mastery/snapshot-runs/{run_id}             one run
  GET  /v1/mastery/snapshot-runs/{run_id}/snapshots   its snapshots

Staff only, always scoped to the caller's organization.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.api.dependencies import Repos, StaffPrincipal, get_runner_config
from app.api.schemas import SnapshotOut, SnapshotRunOut
from app.models.scope import ScopeKind
from app.repos.snapshot_repo import RunFilters
from app.services.errors import NotFoundError
from app.services.snapshot_runner import (
    RunnerConfig,
    RunRequest,
    SnapshotRunCoordinator,
)

router = APIRouter(prefix="/v1/mastery/snapshot-runs", tags=["snapshot-runs"])


class SnapshotRunIn(BaseModel):
    # Everything optional at the schema level: RunRequest.parse reports
    # every missing or malformed field in one 400 response.
    scope_kind: str | None = None
    scope_id: str | None = None
    mastery_model_id: str | None = None
    school_year_id: str | None = None
    quarter: str | None = None
    term: str | None = None
    snapshot_date: str | None = None


class SnapshotRunResult(BaseModel):
    run_id: str
    snapshot_count: int
    message: str
    evaluated_pairs: int
    unclassified_pairs: int
    failed_pairs: int
    deadline_exceeded: bool


@router.post(
    "",
    response_model=SnapshotRunResult,
    status_code=status.HTTP_201_CREATED,
)
async def trigger_snapshot_run(
    body: SnapshotRunIn,
    principal: StaffPrincipal,
    repos: Repos,
    config: Annotated[RunnerConfig, Depends(get_runner_config)],
) -> SnapshotRunResult:
    request = RunRequest.parse(**body.model_dump())
    coordinator = SnapshotRunCoordinator(
        school_repo=repos.school,
        mastery_repo=repos.mastery,
        snapshot_writer=repos.run_writer,
        config=config,
    )
    assert principal.org_id is not None
    outcome = await coordinator.run(
        request, org_id=principal.org_id, initiator_id=principal.user_id
    )
    return SnapshotRunResult(
        run_id=str(outcome.run_id),
        snapshot_count=outcome.snapshot_count,
        message=outcome.message,
        evaluated_pairs=outcome.evaluated_pairs,
        unclassified_pairs=outcome.unclassified_pairs,
        failed_pairs=outcome.failed_pairs,
        deadline_exceeded=outcome.deadline_exceeded,
    )


@router.get("", response_model=list[SnapshotRunOut])
async def list_snapshot_runs(
    principal: StaffPrincipal,
    repos: Repos,
    school_id: UUID | None = None,
    scope_kind: ScopeKind | None = None,
    scope_id: UUID | None = None,
    school_year_id: UUID | None = None,
) -> list[SnapshotRunOut]:
    """Newest first."""
    assert principal.org_id is not None
    runs = await repos.snapshots.list_runs(
        principal.org_id,
        RunFilters(
            school_id=school_id,
            scope_kind=scope_kind,
            scope_id=scope_id,
            school_year_id=school_year_id,
        ),
    )
    return [SnapshotRunOut.from_run(r) for r in runs]


@router.get("/{run_id}", response_model=SnapshotRunOut)
async def get_snapshot_run(
    run_id: UUID, principal: StaffPrincipal, repos: Repos
) -> SnapshotRunOut:
    assert principal.org_id is not None
    run = await repos.snapshots.get_run(run_id, principal.org_id)
    if run is None:
        # other organizations' runs are indistinguishable from missing ones
        raise NotFoundError("Snapshot run not found")
    return SnapshotRunOut.from_run(run)


@router.get("/{run_id}/snapshots", response_model=list[SnapshotOut])
async def list_run_snapshots(
    run_id: UUID, principal: StaffPrincipal, repos: Repos
) -> list[SnapshotOut]:
    assert principal.org_id is not None
    run = await repos.snapshots.get_run(run_id, principal.org_id)
    if run is None:
        raise NotFoundError("Snapshot run not found")
    snapshots = await repos.snapshots.list_snapshots(run_id)
    return [SnapshotOut.from_snapshot(s) for s in snapshots]
