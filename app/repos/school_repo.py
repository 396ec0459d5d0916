"""Read-only access to the school records the snapshot engine consumes.

Sections, enrollments, observations, assessments, lesson logs and
portfolio artifacts are owned by other parts of the platform.  The
engine only reads them, so this contract has no write operations;
InMemorySchoolDataRepo.seed() exists for tests and local demos.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Protocol
from uuid import UUID

from app.models.school import (
    Assessment,
    Competency,
    Experience,
    LessonLog,
    LessonLogVerification,
    Observation,
    PortfolioArtifact,
    SchoolYear,
    Section,
    SectionEnrollment,
    SyllabusWeek,
)
from app.models.scope import ScopeKind


class SchoolDataRepo(Protocol):
    # --- learner resolution ---
    async def list_section_learners(
        self, section_id: UUID, org_id: UUID
    ) -> list[UUID]: ...
    async def list_program_learners(
        self, program_id: UUID, org_id: UUID
    ) -> list[UUID]: ...
    async def list_experience_learners(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]: ...
    async def list_syllabus_learners(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[UUID]: ...

    # --- competency resolution ---
    async def list_experience_competencies(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]: ...
    async def list_syllabus_weeks(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[SyllabusWeek]: ...
    async def list_org_competencies(self, org_id: UUID) -> list[UUID]: ...

    # --- run context ---
    async def get_active_school_year(self, org_id: UUID) -> SchoolYear | None: ...
    async def get_scope_school(
        self, scope_kind: ScopeKind, scope_id: UUID, org_id: UUID
    ) -> UUID | None: ...

    # --- evidence ---
    async def list_completed_assessments(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Assessment]: ...
    async def get_observation_competencies(
        self, observation_ids: list[UUID]
    ) -> dict[UUID, UUID]: ...
    async def list_active_observations(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Observation]: ...
    async def list_accomplished_verifications(
        self, learner_id: UUID, syllabus_id: UUID, org_id: UUID
    ) -> list[LessonLogVerification]: ...
    async def list_portfolio_artifacts(
        self, learner_id: UUID, org_id: UUID
    ) -> list[PortfolioArtifact]: ...


def _distinct(ids) -> list[UUID]:
    # first-seen order keeps runs deterministic
    return list(dict.fromkeys(ids))


class InMemorySchoolDataRepo:
    def __init__(self) -> None:
        self._records: dict[type, list] = defaultdict(list)

    def seed(self, *records) -> None:
        for record in records:
            self._records[type(record)].append(record)

    def clear(self) -> None:
        self._records.clear()

    def _all(self, cls: type) -> list:
        return self._records.get(cls, [])

    # --- learner resolution ---

    async def list_section_learners(
        self, section_id: UUID, org_id: UUID
    ) -> list[UUID]:
        owned = any(
            s.id == section_id
            and s.organization_id == org_id
            and s.archived_at is None
            for s in self._all(Section)
        )
        if not owned:
            return []
        return _distinct(
            e.learner_id
            for e in self._all(SectionEnrollment)
            if e.section_id == section_id and e.archived_at is None
        )

    async def list_program_learners(
        self, program_id: UUID, org_id: UUID
    ) -> list[UUID]:
        section_ids = {
            s.id
            for s in self._all(Section)
            if s.program_id == program_id
            and s.organization_id == org_id
            and s.archived_at is None
        }
        return _distinct(
            e.learner_id
            for e in self._all(SectionEnrollment)
            if e.section_id in section_ids and e.archived_at is None
        )

    async def list_experience_learners(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]:
        return _distinct(
            o.learner_id
            for o in self._all(Observation)
            if o.experience_id == experience_id
            and o.organization_id == org_id
            and o.status == "active"
            and o.archived_at is None
        )

    async def list_syllabus_learners(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[UUID]:
        log_ids = self._syllabus_log_ids(syllabus_id, org_id)
        return _distinct(
            v.learner_id
            for v in self._all(LessonLogVerification)
            if v.lesson_log_id in log_ids
            and v.organization_id == org_id
            and v.archived_at is None
        )

    def _syllabus_log_ids(self, syllabus_id: UUID, org_id: UUID) -> set[UUID]:
        return {
            log.id
            for log in self._all(LessonLog)
            if log.syllabus_id == syllabus_id
            and log.organization_id == org_id
            and log.archived_at is None
        }

    # --- competency resolution ---

    async def list_experience_competencies(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]:
        for exp in self._all(Experience):
            if exp.id == experience_id and exp.organization_id == org_id:
                return _distinct(exp.competency_ids)
        return []

    async def list_syllabus_weeks(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[SyllabusWeek]:
        return [
            w
            for w in self._all(SyllabusWeek)
            if w.syllabus_id == syllabus_id
            and w.organization_id == org_id
            and w.archived_at is None
        ]

    async def list_org_competencies(self, org_id: UUID) -> list[UUID]:
        return [
            c.id
            for c in self._all(Competency)
            if c.organization_id == org_id and c.archived_at is None
        ]

    # --- run context ---

    async def get_active_school_year(self, org_id: UUID) -> SchoolYear | None:
        for year in self._all(SchoolYear):
            if year.organization_id == org_id and year.is_active:
                return year
        return None

    async def get_scope_school(
        self, scope_kind: ScopeKind, scope_id: UUID, org_id: UUID
    ) -> UUID | None:
        if scope_kind is ScopeKind.SECTION:
            candidates = self._all(Section)
        elif scope_kind is ScopeKind.EXPERIENCE:
            candidates = self._all(Experience)
        else:
            return None
        for record in candidates:
            if record.id == scope_id and record.organization_id == org_id:
                return record.school_id
        return None

    # --- evidence ---

    async def list_completed_assessments(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Assessment]:
        return [
            a
            for a in self._all(Assessment)
            if a.learner_id == learner_id
            and a.organization_id == org_id
            and a.status == "completed"
            and a.archived_at is None
        ]

    async def get_observation_competencies(
        self, observation_ids: list[UUID]
    ) -> dict[UUID, UUID]:
        wanted = set(observation_ids)
        return {
            o.id: o.competency_id for o in self._all(Observation) if o.id in wanted
        }

    async def list_active_observations(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Observation]:
        return [
            o
            for o in self._all(Observation)
            if o.learner_id == learner_id
            and o.organization_id == org_id
            and o.status == "active"
            and o.archived_at is None
        ]

    async def list_accomplished_verifications(
        self, learner_id: UUID, syllabus_id: UUID, org_id: UUID
    ) -> list[LessonLogVerification]:
        log_ids = self._syllabus_log_ids(syllabus_id, org_id)
        return [
            v
            for v in self._all(LessonLogVerification)
            if v.learner_id == learner_id
            and v.lesson_log_id in log_ids
            and v.organization_id == org_id
            and v.accomplished
            and v.archived_at is None
        ]

    async def list_portfolio_artifacts(
        self, learner_id: UUID, org_id: UUID
    ) -> list[PortfolioArtifact]:
        return [
            p
            for p in self._all(PortfolioArtifact)
            if p.learner_id == learner_id
            and p.organization_id == org_id
            and p.archived_at is None
        ]
