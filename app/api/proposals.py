"""Proposal review endpoints.

A proposal is a snapshot that has been submitted for review.

  GET  /v1/mastery/proposals?state=submitted       review queue, oldest first
  GET  /v1/mastery/proposals/{snapshot_id}         detail + links + history
  POST /v1/mastery/proposals/{snapshot_id}/submit  draft/changes_requested -> submitted
  POST /v1/mastery/proposals/{snapshot_id}/review  approve | request_changes | override

A successful review invalidates the cached progress report of that
learner in that run.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from app.api.dependencies import Repos, StaffPrincipal
from app.api.schemas import EvidenceLinkOut, ReviewEventOut, SnapshotOut
from app.models.snapshot import ReviewState, Snapshot
from app.services.cache import cache_service
from app.services.errors import NotFoundError
from app.services.progress_report import report_cache_key
from app.services.review_workflow import ReviewRequest, ReviewWorkflow

router = APIRouter(prefix="/v1/mastery/proposals", tags=["proposals"])


class ReviewIn(BaseModel):
    action: str | None = None  # approve|request_changes|override
    reviewer_notes: str | None = None
    override_level_id: str | None = None
    override_justification: str | None = None


class ProposalDetailOut(BaseModel):
    snapshot: SnapshotOut
    evidence_links: list[EvidenceLinkOut]
    history: list[ReviewEventOut]


async def _invalidate_report(snapshot: Snapshot) -> None:
    if snapshot.run_id is not None:
        key = report_cache_key(snapshot.run_id, snapshot.learner_id)
        await cache_service.delete(key)


@router.get("", response_model=list[SnapshotOut])
async def list_proposals(
    principal: StaffPrincipal,
    repos: Repos,
    state: ReviewState = ReviewState.SUBMITTED,
) -> list[SnapshotOut]:
    assert principal.org_id is not None
    snapshots = await repos.snapshots.list_by_state(principal.org_id, state)
    return [SnapshotOut.from_snapshot(s) for s in snapshots]


@router.get("/{snapshot_id}", response_model=ProposalDetailOut)
async def get_proposal(
    snapshot_id: UUID, principal: StaffPrincipal, repos: Repos
) -> ProposalDetailOut:
    assert principal.org_id is not None
    snapshot = await repos.snapshots.get_snapshot(snapshot_id, principal.org_id)
    if snapshot is None:
        raise NotFoundError("Proposal not found")
    links = await repos.snapshots.list_links(snapshot_id)
    events = await repos.snapshots.list_events(snapshot_id)
    return ProposalDetailOut(
        snapshot=SnapshotOut.from_snapshot(snapshot),
        evidence_links=[EvidenceLinkOut.from_link(link) for link in links],
        history=[ReviewEventOut.from_event(e) for e in events],
    )


@router.post("/{snapshot_id}/submit", response_model=SnapshotOut)
async def submit_proposal(
    snapshot_id: UUID, principal: StaffPrincipal, repos: Repos
) -> SnapshotOut:
    assert principal.org_id is not None
    workflow = ReviewWorkflow(
        snapshot_repo=repos.snapshots, mastery_repo=repos.mastery
    )
    snapshot = await workflow.submit(
        snapshot_id, org_id=principal.org_id, actor_id=principal.user_id
    )
    await _invalidate_report(snapshot)
    return SnapshotOut.from_snapshot(snapshot)


@router.post("/{snapshot_id}/review", response_model=SnapshotOut)
async def review_proposal(
    snapshot_id: UUID,
    body: ReviewIn,
    principal: StaffPrincipal,
    repos: Repos,
) -> SnapshotOut:
    # validate before touching the store: a bad request never mutates
    request = ReviewRequest.parse(**body.model_dump())
    assert principal.org_id is not None
    workflow = ReviewWorkflow(
        snapshot_repo=repos.snapshots, mastery_repo=repos.mastery
    )
    snapshot = await workflow.review(
        snapshot_id,
        request,
        org_id=principal.org_id,
        reviewer_id=principal.user_id,
    )
    await _invalidate_report(snapshot)
    return SnapshotOut.from_snapshot(snapshot)
