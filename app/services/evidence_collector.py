"""Evidence collection for one learner/competency pair.

Four kinds of record count as evidence, each with its own rule:

  assessment          completed assessments of the learner.  An assessment
                      has no competency of its own; it counts for a
                      competency when ANY observation its evidence links
                      point at targets that competency.  Counted once per
                      assessment however many of its links match.
  observation         active observations authored for exactly this
                      learner and competency.
  lesson_log          syllabus scope only: the learner's verifications
                      flagged accomplished on lesson logs of the syllabus.
                      Participation rather than mastery, but it is folded
                      into the same count.
  portfolio_artifact  the learner's artifacts tagged with the competency.

Attendance is supporting evidence only and never counted.

Loading is split from pairing so a run can fetch everything for a
learner once (load_learner) and then pair it with each competency in
memory (LearnerEvidence.for_competency).  collect() composes the two for
single-pair callers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from app.models.evidence import EvidenceAggregate, EvidenceItem, EvidenceKind
from app.models.school import (
    Assessment,
    LessonLogVerification,
    Observation,
    PortfolioArtifact,
)
from app.models.scope import Scope, ScopeKind
from app.repos.school_repo import SchoolDataRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReachedAssessment:
    assessment: Assessment
    competency_ids: frozenset[UUID]  # reached through linked observations


@dataclass(frozen=True, slots=True)
class LearnerEvidence:
    """Every evidence record of one learner that could count in a scope."""

    learner_id: UUID
    assessments: tuple[ReachedAssessment, ...] = field(default_factory=tuple)
    observations: tuple[Observation, ...] = field(default_factory=tuple)
    verifications: tuple[LessonLogVerification, ...] = field(default_factory=tuple)
    artifacts: tuple[PortfolioArtifact, ...] = field(default_factory=tuple)

    def for_competency(self, competency_id: UUID) -> EvidenceAggregate:
        items: list[EvidenceItem] = []
        items.extend(
            EvidenceItem(
                kind=EvidenceKind.ASSESSMENT,
                source_id=r.assessment.id,
                occurred_at=r.assessment.created_at,
            )
            for r in self.assessments
            if competency_id in r.competency_ids
        )
        items.extend(
            EvidenceItem(
                kind=EvidenceKind.OBSERVATION,
                source_id=o.id,
                occurred_at=o.created_at,
            )
            for o in self.observations
            if o.competency_id == competency_id
        )
        # not competency-specific: applies to every pair in the syllabus
        items.extend(
            EvidenceItem(
                kind=EvidenceKind.LESSON_LOG,
                source_id=v.id,
                occurred_at=v.created_at,
            )
            for v in self.verifications
        )
        items.extend(
            EvidenceItem(
                kind=EvidenceKind.PORTFOLIO_ARTIFACT,
                source_id=p.id,
                occurred_at=p.created_at,
            )
            for p in self.artifacts
            if competency_id in p.competency_ids
        )
        return EvidenceAggregate(items=tuple(items))


class EvidenceCollector:
    def __init__(self, school_repo: SchoolDataRepo) -> None:
        self._school = school_repo

    async def load_learner(
        self, learner_id: UUID, scope: Scope, org_id: UUID
    ) -> LearnerEvidence:
        assessments, observations, verifications, artifacts = await asyncio.gather(
            self._reached_assessments(learner_id, org_id),
            self._school.list_active_observations(learner_id, org_id),
            self._verifications(learner_id, scope, org_id),
            self._school.list_portfolio_artifacts(learner_id, org_id),
        )
        evidence = LearnerEvidence(
            learner_id=learner_id,
            assessments=tuple(assessments),
            observations=tuple(observations),
            verifications=tuple(verifications),
            artifacts=tuple(artifacts),
        )
        logger.debug(
            "Loaded evidence: %d assessments, %d observations, "
            "%d verifications, %d artifacts",
            len(evidence.assessments),
            len(evidence.observations),
            len(evidence.verifications),
            len(evidence.artifacts),
            extra={"learner_id": str(learner_id)},
        )
        return evidence

    async def collect(
        self,
        learner_id: UUID,
        competency_id: UUID,
        scope: Scope,
        org_id: UUID,
    ) -> EvidenceAggregate:
        evidence = await self.load_learner(learner_id, scope, org_id)
        return evidence.for_competency(competency_id)

    async def _reached_assessments(
        self, learner_id: UUID, org_id: UUID
    ) -> list[ReachedAssessment]:
        assessments = await self._school.list_completed_assessments(learner_id, org_id)
        linked = [oid for a in assessments for oid in a.observation_ids]
        if not linked:
            # no links means no competency can be reached
            return []
        targets = await self._school.get_observation_competencies(
            list(dict.fromkeys(linked))
        )
        reached = []
        for a in assessments:
            competencies = frozenset(
                targets[oid] for oid in a.observation_ids if oid in targets
            )
            if competencies:
                reached.append(ReachedAssessment(a, competencies))
        return reached

    async def _verifications(
        self, learner_id: UUID, scope: Scope, org_id: UUID
    ) -> list[LessonLogVerification]:
        if scope.kind is not ScopeKind.SYLLABUS:
            return []
        return await self._school.list_accomplished_verifications(
            learner_id, scope.id, org_id
        )
