from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class EvidenceKind(StrEnum):
    # Declaration order is the order used in rationale text
    ASSESSMENT = "assessment"
    OBSERVATION = "observation"
    LESSON_LOG = "lesson_log"
    PORTFOLIO_ARTIFACT = "portfolio_artifact"


@dataclass(frozen=True, slots=True)
class EvidenceItem:
    """One qualifying record behind a mastery judgment.

    Transient: consumed immediately to build EvidenceLinks.
    """

    kind: EvidenceKind
    source_id: UUID
    occurred_at: datetime


@dataclass(frozen=True, slots=True)
class EvidenceAggregate:
    items: tuple[EvidenceItem, ...] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def last_evidence_at(self) -> datetime | None:
        if not self.items:
            return None
        return max(item.occurred_at for item in self.items)

    @property
    def has_assessment(self) -> bool:
        return any(item.kind is EvidenceKind.ASSESSMENT for item in self.items)

    @property
    def has_observation(self) -> bool:
        return any(item.kind is EvidenceKind.OBSERVATION for item in self.items)

    def count_by_kind(self) -> dict[EvidenceKind, int]:
        counts = Counter(item.kind for item in self.items)
        return {kind: counts[kind] for kind in EvidenceKind if counts[kind]}
