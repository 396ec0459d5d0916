"""PostgreSQL implementation of SchoolDataRepo.

Each call opens its own short-lived session from the factory, so the
snapshot runner's workers can load evidence for several learners at
once without sharing a connection.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.errors import translate_sqlalchemy_errors
from app.db.tables import (
    AssessmentEvidenceLinkRow,
    AssessmentRow,
    CompetencyRow,
    ExperienceCompetencyLinkRow,
    ExperienceRow,
    LessonLogRow,
    LessonLogVerificationRow,
    ObservationRow,
    PortfolioArtifactRow,
    PortfolioArtifactTagRow,
    SchoolYearRow,
    SectionRow,
    SectionStudentRow,
    SyllabusWeekCompetencyLinkRow,
    SyllabusWeekRow,
)
from app.models.school import (
    Assessment,
    LessonLogVerification,
    Observation,
    PortfolioArtifact,
    SchoolYear,
    SyllabusWeek,
)
from app.models.scope import ScopeKind


class PgSchoolDataRepo:
    """Satisfies the SchoolDataRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _all(self, stmt, operation: str) -> list:
        with translate_sqlalchemy_errors(operation):
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).all())

    async def _column(self, stmt, operation: str) -> list[UUID]:
        return list(dict.fromkeys(row[0] for row in await self._all(stmt, operation)))

    # --- learner resolution ---

    async def list_section_learners(
        self, section_id: UUID, org_id: UUID
    ) -> list[UUID]:
        owned_section = select(SectionRow.id).where(
            SectionRow.id == section_id,
            SectionRow.organization_id == org_id,
            SectionRow.archived_at.is_(None),
        )
        stmt = select(SectionStudentRow.student_id).where(
            SectionStudentRow.section_id.in_(owned_section),
            SectionStudentRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list section learners")

    async def list_program_learners(
        self, program_id: UUID, org_id: UUID
    ) -> list[UUID]:
        active_sections = select(SectionRow.id).where(
            SectionRow.program_id == program_id,
            SectionRow.organization_id == org_id,
            SectionRow.archived_at.is_(None),
        )
        stmt = select(SectionStudentRow.student_id).where(
            SectionStudentRow.section_id.in_(active_sections),
            SectionStudentRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list program learners")

    async def list_experience_learners(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]:
        stmt = select(ObservationRow.learner_id).where(
            ObservationRow.experience_id == experience_id,
            ObservationRow.organization_id == org_id,
            ObservationRow.status == "active",
            ObservationRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list experience learners")

    async def list_syllabus_learners(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[UUID]:
        stmt = select(LessonLogVerificationRow.learner_id).where(
            LessonLogVerificationRow.lesson_log_id.in_(
                _syllabus_logs(syllabus_id, org_id)
            ),
            LessonLogVerificationRow.organization_id == org_id,
            LessonLogVerificationRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list syllabus learners")

    # --- competency resolution ---

    async def list_experience_competencies(
        self, experience_id: UUID, org_id: UUID
    ) -> list[UUID]:
        stmt = select(ExperienceCompetencyLinkRow.competency_id).where(
            ExperienceCompetencyLinkRow.experience_id == experience_id,
            ExperienceCompetencyLinkRow.organization_id == org_id,
            ExperienceCompetencyLinkRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list experience competencies")

    async def list_syllabus_weeks(
        self, syllabus_id: UUID, org_id: UUID
    ) -> list[SyllabusWeek]:
        weeks = await self._all(
            select(SyllabusWeekRow.id).where(
                SyllabusWeekRow.syllabus_id == syllabus_id,
                SyllabusWeekRow.organization_id == org_id,
                SyllabusWeekRow.archived_at.is_(None),
            ),
            "list syllabus weeks",
        )
        week_ids = [row.id for row in weeks]
        if not week_ids:
            return []
        links = await self._all(
            select(
                SyllabusWeekCompetencyLinkRow.syllabus_week_id,
                SyllabusWeekCompetencyLinkRow.competency_id,
            ).where(
                SyllabusWeekCompetencyLinkRow.syllabus_week_id.in_(week_ids),
                SyllabusWeekCompetencyLinkRow.organization_id == org_id,
                SyllabusWeekCompetencyLinkRow.archived_at.is_(None),
            ),
            "list syllabus week competencies",
        )
        by_week: dict[UUID, list[UUID]] = defaultdict(list)
        for week_id, competency_id in links:
            by_week[week_id].append(competency_id)
        return [
            SyllabusWeek(
                id=week_id,
                organization_id=org_id,
                syllabus_id=syllabus_id,
                competency_ids=tuple(by_week[week_id]),
            )
            for week_id in week_ids
        ]

    async def list_org_competencies(self, org_id: UUID) -> list[UUID]:
        stmt = select(CompetencyRow.id).where(
            CompetencyRow.organization_id == org_id,
            CompetencyRow.archived_at.is_(None),
        )
        return await self._column(stmt, "list organization competencies")

    # --- run context ---

    async def get_active_school_year(self, org_id: UUID) -> SchoolYear | None:
        rows = await self._all(
            select(SchoolYearRow)
            .where(
                SchoolYearRow.organization_id == org_id,
                SchoolYearRow.is_active.is_(True),
            )
            .limit(1),
            "get active school year",
        )
        if not rows:
            return None
        row = rows[0][0]
        return SchoolYear(
            id=row.id,
            organization_id=row.organization_id,
            label=row.label,
            is_active=row.is_active,
        )

    async def get_scope_school(
        self, scope_kind: ScopeKind, scope_id: UUID, org_id: UUID
    ) -> UUID | None:
        if scope_kind is ScopeKind.SECTION:
            table = SectionRow
        elif scope_kind is ScopeKind.EXPERIENCE:
            table = ExperienceRow
        else:
            return None
        rows = await self._all(
            select(table.school_id).where(
                table.id == scope_id, table.organization_id == org_id
            ),
            "get scope school",
        )
        return rows[0][0] if rows else None

    # --- evidence ---

    async def list_completed_assessments(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Assessment]:
        rows = await self._all(
            select(AssessmentRow).where(
                AssessmentRow.learner_id == learner_id,
                AssessmentRow.organization_id == org_id,
                AssessmentRow.status == "completed",
                AssessmentRow.archived_at.is_(None),
            ),
            "list completed assessments",
        )
        assessments = [row[0] for row in rows]
        if not assessments:
            return []
        links = await self._all(
            select(
                AssessmentEvidenceLinkRow.assessment_id,
                AssessmentEvidenceLinkRow.observation_id,
            ).where(
                AssessmentEvidenceLinkRow.assessment_id.in_(
                    [a.id for a in assessments]
                ),
                AssessmentEvidenceLinkRow.observation_id.is_not(None),
                AssessmentEvidenceLinkRow.archived_at.is_(None),
            ),
            "list assessment evidence links",
        )
        observations: dict[UUID, list[UUID]] = defaultdict(list)
        for assessment_id, observation_id in links:
            observations[assessment_id].append(observation_id)
        return [
            Assessment(
                id=a.id,
                organization_id=a.organization_id,
                learner_id=a.learner_id,
                created_at=a.created_at,
                status=a.status,
                observation_ids=tuple(observations[a.id]),
            )
            for a in assessments
        ]

    async def get_observation_competencies(
        self, observation_ids: list[UUID]
    ) -> dict[UUID, UUID]:
        if not observation_ids:
            return {}
        rows = await self._all(
            select(ObservationRow.id, ObservationRow.competency_id).where(
                ObservationRow.id.in_(observation_ids)
            ),
            "get observation competencies",
        )
        return {obs_id: competency_id for obs_id, competency_id in rows}

    async def list_active_observations(
        self, learner_id: UUID, org_id: UUID
    ) -> list[Observation]:
        rows = await self._all(
            select(ObservationRow).where(
                ObservationRow.learner_id == learner_id,
                ObservationRow.organization_id == org_id,
                ObservationRow.status == "active",
                ObservationRow.archived_at.is_(None),
            ),
            "list active observations",
        )
        return [_row_to_observation(row[0]) for row in rows]

    async def list_accomplished_verifications(
        self, learner_id: UUID, syllabus_id: UUID, org_id: UUID
    ) -> list[LessonLogVerification]:
        rows = await self._all(
            select(LessonLogVerificationRow).where(
                LessonLogVerificationRow.learner_id == learner_id,
                LessonLogVerificationRow.lesson_log_id.in_(
                    _syllabus_logs(syllabus_id, org_id)
                ),
                LessonLogVerificationRow.accomplished_flag.is_(True),
                LessonLogVerificationRow.organization_id == org_id,
                LessonLogVerificationRow.archived_at.is_(None),
            ),
            "list lesson log verifications",
        )
        return [
            LessonLogVerification(
                id=v.id,
                organization_id=v.organization_id,
                lesson_log_id=v.lesson_log_id,
                learner_id=v.learner_id,
                created_at=v.created_at,
                accomplished=v.accomplished_flag,
            )
            for (v,) in rows
        ]

    async def list_portfolio_artifacts(
        self, learner_id: UUID, org_id: UUID
    ) -> list[PortfolioArtifact]:
        rows = await self._all(
            select(PortfolioArtifactRow).where(
                PortfolioArtifactRow.student_id == learner_id,
                PortfolioArtifactRow.organization_id == org_id,
                PortfolioArtifactRow.archived_at.is_(None),
            ),
            "list portfolio artifacts",
        )
        artifacts = [row[0] for row in rows]
        if not artifacts:
            return []
        tags = await self._all(
            select(
                PortfolioArtifactTagRow.artifact_id,
                PortfolioArtifactTagRow.competency_id,
            ).where(
                PortfolioArtifactTagRow.artifact_id.in_([a.id for a in artifacts]),
                PortfolioArtifactTagRow.competency_id.is_not(None),
                PortfolioArtifactTagRow.archived_at.is_(None),
            ),
            "list portfolio artifact tags",
        )
        tagged: dict[UUID, set[UUID]] = defaultdict(set)
        for artifact_id, competency_id in tags:
            tagged[artifact_id].add(competency_id)
        return [
            PortfolioArtifact(
                id=a.id,
                organization_id=a.organization_id,
                learner_id=a.student_id,
                created_at=a.created_at,
                competency_ids=frozenset(tagged[a.id]),
            )
            for a in artifacts
        ]


def _syllabus_logs(syllabus_id: UUID, org_id: UUID):
    return select(LessonLogRow.id).where(
        LessonLogRow.syllabus_id == syllabus_id,
        LessonLogRow.organization_id == org_id,
        LessonLogRow.archived_at.is_(None),
    )


def _row_to_observation(row: ObservationRow) -> Observation:
    return Observation(
        id=row.id,
        organization_id=row.organization_id,
        learner_id=row.learner_id,
        competency_id=row.competency_id,
        created_at=row.created_at,
        experience_id=row.experience_id,
        status=row.status,
    )
