"""Mastery classification: evidence aggregate -> level id.

Highest bar first, first match wins:

  count == 0                                       -> not_started
  count >= mastered   and assessment and observation -> mastered
  count >= proficient and (assessment or observation) -> proficient
  count >= developing                              -> developing
  count >= emerging                                -> emerging
  otherwise                                        -> first level

Each target is looked up by the level's ``kind`` tag, then by a
case-insensitive label match for untagged catalogs, then positionally
(first level for not_started, last for mastered/proficient, index
min(2, last) for developing and min(1, last) for emerging).

No thresholds or no levels means no classification (None).
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from app.models.evidence import EvidenceAggregate, EvidenceKind
from app.models.mastery import LevelKind, MasteryLevel, MasteryThresholds


def _find(levels: Sequence[MasteryLevel], kind: LevelKind, fallback: int) -> UUID:
    for level in levels:
        if level.kind is kind:
            return level.id
    for level in levels:
        if level.kind is None and level.label.strip().lower() == kind.value:
            return level.id
    return levels[fallback].id


def classify(
    evidence_count: int,
    has_assessment: bool,
    has_observation: bool,
    thresholds: MasteryThresholds | None,
    levels: Sequence[MasteryLevel],
) -> UUID | None:
    if thresholds is None or not levels:
        return None

    ordered = sorted(levels, key=lambda lvl: lvl.display_order)
    last = len(ordered) - 1

    if evidence_count == 0:
        return _find(ordered, LevelKind.NOT_STARTED, 0)
    if evidence_count >= thresholds.mastered and has_assessment and has_observation:
        return _find(ordered, LevelKind.MASTERED, last)
    if evidence_count >= thresholds.proficient and (has_assessment or has_observation):
        return _find(ordered, LevelKind.PROFICIENT, last)
    if evidence_count >= thresholds.developing:
        return _find(ordered, LevelKind.DEVELOPING, min(2, last))
    if evidence_count >= thresholds.emerging:
        return _find(ordered, LevelKind.EMERGING, min(1, last))
    return ordered[0].id


def classify_aggregate(
    aggregate: EvidenceAggregate,
    thresholds: MasteryThresholds | None,
    levels: Sequence[MasteryLevel],
) -> UUID | None:
    return classify(
        aggregate.count,
        aggregate.has_assessment,
        aggregate.has_observation,
        thresholds,
        levels,
    )


_KIND_NOUNS: dict[EvidenceKind, tuple[str, str]] = {
    EvidenceKind.ASSESSMENT: ("assessment", "assessments"),
    EvidenceKind.OBSERVATION: ("observation", "observations"),
    EvidenceKind.LESSON_LOG: ("lesson log", "lesson logs"),
    EvidenceKind.PORTFOLIO_ARTIFACT: ("portfolio artifact", "portfolio artifacts"),
}


def _plural(n: int, nouns: tuple[str, str]) -> str:
    return f"{n} {nouns[0] if n == 1 else nouns[1]}"


def build_rationale(aggregate: EvidenceAggregate) -> str:
    """Count plus per-kind breakdown.

    e.g. "5 evidence items incl. 2 assessments, 2 observations, 1 portfolio artifact"
    """
    head = _plural(aggregate.count, ("evidence item", "evidence items"))
    if aggregate.count == 0:
        return head
    parts = [
        _plural(n, _KIND_NOUNS[kind]) for kind, n in aggregate.count_by_kind().items()
    ]
    return f"{head} incl. {', '.join(parts)}"
