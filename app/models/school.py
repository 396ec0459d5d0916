"""School records read by the snapshot engine.

These are owned by the roster, pedagogy, assessment and portfolio
surfaces of the platform.  The engine never writes them; it only needs
the identifiers, statuses and timestamps below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Competency:
    id: UUID
    organization_id: UUID
    name: str
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class SchoolYear:
    id: UUID
    organization_id: UUID
    label: str
    is_active: bool = False


@dataclass(frozen=True, slots=True)
class Section:
    id: UUID
    organization_id: UUID
    program_id: UUID | None = None
    school_id: UUID | None = None
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class SectionEnrollment:
    section_id: UUID
    learner_id: UUID
    archived_at: datetime | None = None  # set when the learner leaves


@dataclass(frozen=True, slots=True)
class Experience:
    id: UUID
    organization_id: UUID
    school_id: UUID | None = None
    competency_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class SyllabusWeek:
    id: UUID
    organization_id: UUID
    syllabus_id: UUID
    competency_ids: tuple[UUID, ...] = ()
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Observation:
    id: UUID
    organization_id: UUID
    learner_id: UUID
    competency_id: UUID
    created_at: datetime
    experience_id: UUID | None = None
    status: str = "active"  # active|retired
    archived_at: datetime | None = None

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        learner_id: UUID,
        competency_id: UUID,
        created_at: datetime,
        experience_id: UUID | None = None,
        status: str = "active",
    ) -> Observation:
        return Observation(
            id=uuid4(),
            organization_id=organization_id,
            learner_id=learner_id,
            competency_id=competency_id,
            created_at=created_at,
            experience_id=experience_id,
            status=status,
        )


@dataclass(frozen=True, slots=True)
class Assessment:
    """A judged piece of learner work.

    Carries no competency reference of its own: it reaches competencies
    through the observations its evidence links point at.
    """

    id: UUID
    organization_id: UUID
    learner_id: UUID
    created_at: datetime
    status: str = "draft"  # draft|completed
    observation_ids: tuple[UUID, ...] = ()  # from its evidence links
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LessonLog:
    id: UUID
    organization_id: UUID
    syllabus_id: UUID
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LessonLogVerification:
    id: UUID
    organization_id: UUID
    lesson_log_id: UUID
    learner_id: UUID
    created_at: datetime
    accomplished: bool = False
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class PortfolioArtifact:
    id: UUID
    organization_id: UUID
    learner_id: UUID
    created_at: datetime
    competency_ids: frozenset[UUID] = field(default_factory=frozenset)  # tags
    archived_at: datetime | None = None
