"""Scope resolution: turn (kind, id) into the learners and competencies
a snapshot run will cross.

Learners, by scope kind:

  section     every learner with a live enrollment in the section
  experience  learners with an active observation tied to the experience
  syllabus    learners with any verification on one of its lesson logs
  program     learners enrolled in any active section of the program

Competencies, by scope kind:

  experience  competencies linked to the experience
  syllabus    union of the competencies linked to each week; a syllabus
              with no weeks is its own gap ("add weeks first")
  program /   every competency in the organization.  A deliberate
  section     simplification until sections carry their own competencies.

An empty learner or competency set is reported as a ScopeResolution with
a ``gap`` set, never as an exception.  The caller decides how to surface
it.  Learners are checked first and short-circuit the competency lookup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from app.models.scope import Scope, ScopeKind
from app.repos.school_repo import SchoolDataRepo
from app.services.errors import ScopeGap

logger = logging.getLogger(__name__)

_GAP_MESSAGES: dict[tuple[ScopeKind | None, ScopeGap], str] = {
    (None, ScopeGap.NO_LEARNERS): "No learners found for this scope",
    (ScopeKind.EXPERIENCE, ScopeGap.NO_COMPETENCIES): (
        "This experience has no competencies linked. Please link competencies "
        "to this experience before generating a snapshot."
    ),
    (ScopeKind.SYLLABUS, ScopeGap.NO_SYLLABUS_WEEKS): (
        "Syllabus has no weeks defined. Please add weeks to this syllabus "
        "before generating a snapshot."
    ),
    (ScopeKind.SYLLABUS, ScopeGap.NO_COMPETENCIES): (
        "This syllabus has no competencies linked to its weeks. Please link "
        "competencies to the syllabus weeks before generating a snapshot."
    ),
    (None, ScopeGap.NO_COMPETENCIES): (
        "No competencies found in this organization. Please create "
        "competencies before generating a snapshot."
    ),
}


def gap_message(scope_kind: ScopeKind, gap: ScopeGap) -> str:
    return _GAP_MESSAGES.get((scope_kind, gap)) or _GAP_MESSAGES[(None, gap)]


@dataclass(frozen=True, slots=True)
class ScopeResolution:
    scope: Scope
    learner_ids: tuple[UUID, ...] = field(default_factory=tuple)
    competency_ids: tuple[UUID, ...] = field(default_factory=tuple)
    gap: ScopeGap | None = None

    @property
    def is_empty(self) -> bool:
        return self.gap is not None

    @property
    def message(self) -> str | None:
        if self.gap is None:
            return None
        return gap_message(self.scope.kind, self.gap)

    @property
    def pair_count(self) -> int:
        return len(self.learner_ids) * len(self.competency_ids)


class ScopeResolver:
    def __init__(self, school_repo: SchoolDataRepo) -> None:
        self._school = school_repo

    async def resolve(self, scope: Scope, org_id: UUID) -> ScopeResolution:
        learners = await self.resolve_learners(scope, org_id)
        if not learners:
            logger.info(
                "No learners for scope",
                extra={"scope_kind": scope.kind.value, "scope_id": str(scope.id)},
            )
            return ScopeResolution(scope=scope, gap=ScopeGap.NO_LEARNERS)

        competencies, gap = await self.resolve_competencies(scope, org_id)
        if gap is not None:
            logger.info(
                "No competencies for scope (%s)",
                gap.value,
                extra={"scope_kind": scope.kind.value, "scope_id": str(scope.id)},
            )
            return ScopeResolution(
                scope=scope, learner_ids=tuple(learners), gap=gap
            )

        return ScopeResolution(
            scope=scope,
            learner_ids=tuple(learners),
            competency_ids=tuple(competencies),
        )

    async def resolve_learners(self, scope: Scope, org_id: UUID) -> list[UUID]:
        if scope.kind is ScopeKind.SECTION:
            return await self._school.list_section_learners(scope.id, org_id)
        if scope.kind is ScopeKind.EXPERIENCE:
            return await self._school.list_experience_learners(scope.id, org_id)
        if scope.kind is ScopeKind.SYLLABUS:
            return await self._school.list_syllabus_learners(scope.id, org_id)
        return await self._school.list_program_learners(scope.id, org_id)

    async def resolve_competencies(
        self, scope: Scope, org_id: UUID
    ) -> tuple[list[UUID], ScopeGap | None]:
        if scope.kind is ScopeKind.EXPERIENCE:
            ids = await self._school.list_experience_competencies(scope.id, org_id)
        elif scope.kind is ScopeKind.SYLLABUS:
            weeks = await self._school.list_syllabus_weeks(scope.id, org_id)
            if not weeks:
                return [], ScopeGap.NO_SYLLABUS_WEEKS
            ids = list(
                dict.fromkeys(cid for week in weeks for cid in week.competency_ids)
            )
        else:
            ids = await self._school.list_org_competencies(org_id)

        if not ids:
            return [], ScopeGap.NO_COMPETENCIES
        return ids, None
