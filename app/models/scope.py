from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID


class ScopeKind(StrEnum):
    EXPERIENCE = "experience"
    SYLLABUS = "syllabus"
    PROGRAM = "program"
    SECTION = "section"


@dataclass(frozen=True, slots=True)
class Scope:
    """What a snapshot run is computed against.

    Lives only for the duration of one invocation; the run record keeps
    a copy of kind and id.
    """

    kind: ScopeKind
    id: UUID
