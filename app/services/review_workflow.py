"""Proposal review workflow over persisted snapshots.

    draft ──submit──> submitted ──approve─────────> approved         (terminal)
                        │  ^    ──override────────> overridden       (terminal)
                        │  └─submit── changes_requested
                        └──request_changes──────────┘

Reviews never touch the automated judgment (level, rationale, evidence
count).  They fill in the review fields and append a ReviewEvent.  The
write is compare-and-set on the state the action was validated against,
so of two concurrent reviews only one applies.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from uuid import UUID

from app.core.metrics import REVIEW_ACTIONS
from app.models.snapshot import ReviewAction, ReviewEvent, ReviewState, Snapshot
from app.repos.mastery_repo import MasteryModelRepo
from app.repos.snapshot_repo import SnapshotRepo
from app.services.errors import (
    IllegalTransitionError,
    NotFoundError,
    ReviewValidationError,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[ReviewState, ReviewAction], ReviewState] = {
    (ReviewState.DRAFT, ReviewAction.SUBMIT): ReviewState.SUBMITTED,
    (ReviewState.CHANGES_REQUESTED, ReviewAction.SUBMIT): ReviewState.SUBMITTED,
    (ReviewState.SUBMITTED, ReviewAction.APPROVE): ReviewState.APPROVED,
    (ReviewState.SUBMITTED, ReviewAction.REQUEST_CHANGES): (
        ReviewState.CHANGES_REQUESTED
    ),
    (ReviewState.SUBMITTED, ReviewAction.OVERRIDE): ReviewState.OVERRIDDEN,
}

REVIEWER_ACTIONS = frozenset(
    {ReviewAction.APPROVE, ReviewAction.REQUEST_CHANGES, ReviewAction.OVERRIDE}
)


def next_state(state: ReviewState, action: ReviewAction) -> ReviewState:
    try:
        return TRANSITIONS[(state, action)]
    except KeyError:
        raise IllegalTransitionError(state.value, action.value) from None


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


@dataclass(frozen=True, slots=True)
class ReviewRequest:
    action: ReviewAction
    reviewer_notes: str | None = None
    override_level_id: UUID | None = None
    override_justification: str | None = None

    @staticmethod
    def parse(
        *,
        action: str | None,
        reviewer_notes: str | None = None,
        override_level_id: UUID | str | None = None,
        override_justification: str | None = None,
    ) -> ReviewRequest:
        errors: dict[str, str] = {}
        parsed_action: ReviewAction | None = None
        try:
            parsed_action = ReviewAction(action or "")
        except ValueError:
            pass
        if parsed_action not in REVIEWER_ACTIONS:
            errors["action"] = "must be one of: approve, request_changes, override"
            raise ReviewValidationError(errors)

        level_id: UUID | None = None
        if override_level_id not in (None, ""):
            try:
                level_id = UUID(str(override_level_id))
            except ValueError:
                errors["override_level_id"] = "must be a UUID"

        if parsed_action is ReviewAction.REQUEST_CHANGES and _blank(reviewer_notes):
            errors["reviewer_notes"] = "is required to request changes"
        if parsed_action is ReviewAction.OVERRIDE:
            if level_id is None and "override_level_id" not in errors:
                errors["override_level_id"] = "is required to override"
            if _blank(override_justification):
                errors["override_justification"] = "is required to override"

        if errors:
            raise ReviewValidationError(errors)
        override = parsed_action is ReviewAction.OVERRIDE
        return ReviewRequest(
            action=parsed_action,
            reviewer_notes=None if _blank(reviewer_notes) else reviewer_notes,
            override_level_id=level_id if override else None,
            override_justification=override_justification if override else None,
        )


class ReviewWorkflow:
    def __init__(
        self,
        *,
        snapshot_repo: SnapshotRepo,
        mastery_repo: MasteryModelRepo,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._snapshots = snapshot_repo
        self._mastery = mastery_repo
        self._clock = clock

    async def review(
        self,
        snapshot_id: UUID,
        request: ReviewRequest,
        *,
        org_id: UUID,
        reviewer_id: UUID,
    ) -> Snapshot:
        snapshot = await self._load(snapshot_id, org_id)
        target = self._check_transition(snapshot, request.action)

        if request.action is ReviewAction.OVERRIDE:
            await self._check_override_level(snapshot, request.override_level_id)

        now = self._clock()
        updated = replace(
            snapshot,
            review_state=target,
            reviewer_notes=request.reviewer_notes,
            override_level_id=request.override_level_id,
            override_justification=request.override_justification,
            reviewed_by=reviewer_id,
            reviewed_at=now,
        )
        event = ReviewEvent.new(
            snapshot_id=snapshot.id,
            action=request.action,
            from_state=snapshot.review_state,
            to_state=target,
            actor_id=reviewer_id,
            occurred_at=now,
            reviewer_notes=request.reviewer_notes,
            override_level_id=request.override_level_id,
            override_justification=request.override_justification,
        )
        return await self._apply(snapshot, updated, event)

    async def submit(
        self, snapshot_id: UUID, *, org_id: UUID, actor_id: UUID
    ) -> Snapshot:
        snapshot = await self._load(snapshot_id, org_id)
        target = self._check_transition(snapshot, ReviewAction.SUBMIT)
        event = ReviewEvent.new(
            snapshot_id=snapshot.id,
            action=ReviewAction.SUBMIT,
            from_state=snapshot.review_state,
            to_state=target,
            actor_id=actor_id,
            occurred_at=self._clock(),
        )
        updated = replace(snapshot, review_state=target)
        return await self._apply(snapshot, updated, event)

    async def _load(self, snapshot_id: UUID, org_id: UUID) -> Snapshot:
        snapshot = await self._snapshots.get_snapshot(snapshot_id, org_id)
        if snapshot is None:
            raise NotFoundError("Proposal not found")
        return snapshot

    def _check_transition(
        self, snapshot: Snapshot, action: ReviewAction
    ) -> ReviewState:
        try:
            return next_state(snapshot.review_state, action)
        except IllegalTransitionError:
            logger.warning(
                "Rejected %s on proposal in state %s",
                action.value,
                snapshot.review_state.value,
                extra={"snapshot_id": str(snapshot.id)},
            )
            raise

    async def _check_override_level(
        self, snapshot: Snapshot, level_id: UUID | None
    ) -> None:
        assert level_id is not None  # ReviewRequest.parse guarantees it
        override = await self._mastery.get_level(level_id)
        original = await self._mastery.get_level(snapshot.mastery_level_id)
        if (
            override is None
            or original is None
            or override.mastery_model_id != original.mastery_model_id
        ):
            logger.warning(
                "Rejected override with level %s from another mastery model",
                level_id,
                extra={"snapshot_id": str(snapshot.id)},
            )
            raise ReviewValidationError(
                {"override_level_id": "must belong to the same mastery model"}
            )

    async def _apply(
        self, snapshot: Snapshot, updated: Snapshot, event: ReviewEvent
    ) -> Snapshot:
        applied = await self._snapshots.apply_review(
            updated, snapshot.review_state, event
        )
        if not applied:
            # lost the race: someone moved the proposal since we read it
            current = await self._snapshots.get_snapshot(
                snapshot.id, snapshot.organization_id
            )
            state = current.review_state if current else snapshot.review_state
            raise IllegalTransitionError(state.value, event.action.value)

        REVIEW_ACTIONS.labels(action=event.action.value).inc()
        logger.info(
            "Proposal %s: %s -> %s",
            event.action.value,
            event.from_state.value,
            event.to_state.value,
            extra={"snapshot_id": str(snapshot.id)},
        )
        return updated
