from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class LevelKind(StrEnum):
    """Stable discriminant for a mastery level.

    Organizations may rename their levels freely; the classifier keys on
    this tag rather than on the display label.
    """

    NOT_STARTED = "not_started"
    EMERGING = "emerging"
    DEVELOPING = "developing"
    PROFICIENT = "proficient"
    MASTERED = "mastered"


@dataclass(frozen=True, slots=True)
class MasteryThresholds:
    # not_started is implicitly 0.  Expected non-decreasing, not enforced.
    emerging: int
    developing: int
    proficient: int
    mastered: int


@dataclass(frozen=True, slots=True)
class MasteryModel:
    id: UUID
    organization_id: UUID
    name: str
    thresholds: MasteryThresholds | None = None
    is_active: bool = True

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        name: str,
        thresholds: MasteryThresholds | None = None,
    ) -> MasteryModel:
        return MasteryModel(
            id=uuid4(),
            organization_id=organization_id,
            name=name,
            thresholds=thresholds,
        )


@dataclass(frozen=True, slots=True)
class MasteryLevel:
    id: UUID
    mastery_model_id: UUID
    label: str
    display_order: int
    kind: LevelKind | None = None
    description: str | None = None

    @staticmethod
    def new(
        *,
        mastery_model_id: UUID,
        label: str,
        display_order: int,
        kind: LevelKind | None = None,
    ) -> MasteryLevel:
        return MasteryLevel(
            id=uuid4(),
            mastery_model_id=mastery_model_id,
            label=label,
            display_order=display_order,
            kind=kind,
        )
