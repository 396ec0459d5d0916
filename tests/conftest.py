from __future__ import annotations

import datetime
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from app.api import dependencies
from app.main import app
from app.models.mastery import LevelKind, MasteryLevel, MasteryModel, MasteryThresholds
from app.models.school import Competency, Section, SectionEnrollment
from app.repos.mastery_repo import InMemoryMasteryModelRepo
from app.repos.school_repo import InMemorySchoolDataRepo
from app.services import token_service
from app.services.cache import cache_service

T0 = datetime.datetime(2026, 9, 1, 9, 0, tzinfo=datetime.UTC)

THRESHOLDS = MasteryThresholds(emerging=1, developing=3, proficient=5, mastered=8)

_LEVELS = [
    ("Not Started", LevelKind.NOT_STARTED),
    ("Emerging", LevelKind.EMERGING),
    ("Developing", LevelKind.DEVELOPING),
    ("Proficient", LevelKind.PROFICIENT),
    ("Mastered", LevelKind.MASTERED),
]


@pytest.fixture(autouse=True)
def reset_repositories() -> None:
    """Clear the in-memory stores the API wires in between tests."""
    dependencies.school_repo.clear()
    dependencies.mastery_repo.clear()
    dependencies.snapshot_repo.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear the report cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


def mint_token(
    user_id: UUID | None = None,
    roles: list[str] | None = None,
    org_id: UUID | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=str(user_id or uuid4()),
        roles=roles,
        org_id=str(org_id) if org_id else None,
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def teacher_headers(org_id: UUID) -> dict[str, str]:
    return auth(mint_token(roles=["teacher"], org_id=org_id))


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def make_model(
    org_id: UUID,
    thresholds: MasteryThresholds | None = THRESHOLDS,
    *,
    tagged: bool = True,
) -> tuple[MasteryModel, list[MasteryLevel]]:
    """A five-level model.  ``tagged=False`` leaves ``kind`` unset."""
    model = MasteryModel.new(
        organization_id=org_id, name="Standard", thresholds=thresholds
    )
    levels = [
        MasteryLevel.new(
            mastery_model_id=model.id,
            label=label,
            display_order=i,
            kind=kind if tagged else None,
        )
        for i, (label, kind) in enumerate(_LEVELS)
    ]
    return model, levels


def seed_model(
    repo: InMemoryMasteryModelRepo,
    org_id: UUID,
    thresholds: MasteryThresholds | None = THRESHOLDS,
) -> tuple[MasteryModel, dict[LevelKind, MasteryLevel]]:
    model, levels = make_model(org_id, thresholds)
    repo.add_model(model, levels)
    return model, {lvl.kind: lvl for lvl in levels if lvl.kind is not None}


def seed_section(
    repo: InMemorySchoolDataRepo,
    org_id: UUID,
    *,
    learners: int = 2,
    school_id: UUID | None = None,
    program_id: UUID | None = None,
) -> tuple[Section, list[UUID]]:
    section = Section(
        id=uuid4(), organization_id=org_id, school_id=school_id, program_id=program_id
    )
    learner_ids = [uuid4() for _ in range(learners)]
    enrollments = [
        SectionEnrollment(section_id=section.id, learner_id=lid) for lid in learner_ids
    ]
    repo.seed(section, *enrollments)
    return section, learner_ids


def seed_competencies(
    repo: InMemorySchoolDataRepo, org_id: UUID, n: int = 3
) -> list[UUID]:
    competencies = [
        Competency(id=uuid4(), organization_id=org_id, name=f"Competency {i}")
        for i in range(n)
    ]
    repo.seed(*competencies)
    return [c.id for c in competencies]
