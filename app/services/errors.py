"""Exception hierarchy for the mastery engine.

Services raise these; app/api translates them into HTTP responses.
"""

from __future__ import annotations

from enum import StrEnum


class MasteryError(Exception):
    """Base for every error the engine raises on purpose."""


class MasteryValidationError(MasteryError, ValueError):
    """Request fields are missing or invalid.  Nothing has been written."""

    def __init__(self, fields: dict[str, str]) -> None:
        self.fields = fields
        super().__init__(
            "Invalid request: " + ", ".join(f"{k} {v}" for k, v in fields.items())
        )


class ScopeGap(StrEnum):
    NO_LEARNERS = "no_learners"
    NO_COMPETENCIES = "no_competencies"
    NO_SYLLABUS_WEEKS = "no_syllabus_weeks"
    RESOLUTION_FAILED = "resolution_failed"


class ScopeResolutionError(MasteryError):
    """The scope resolved to nothing usable.  Raised before any run exists."""

    def __init__(self, scope_kind: str, gap: ScopeGap, message: str) -> None:
        self.scope_kind = scope_kind
        self.gap = gap
        super().__init__(message)


class PersistenceError(MasteryError):
    """A write failed.

    ``transient`` marks connection-level failures worth retrying.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class RunPersistenceError(MasteryError):
    """The snapshot run itself could not be created or finalized."""


class ReviewValidationError(MasteryError, ValueError):
    def __init__(self, fields: dict[str, str]) -> None:
        self.fields = fields
        super().__init__(
            "Invalid review: " + ", ".join(f"{k} {v}" for k, v in fields.items())
        )


class IllegalTransitionError(MasteryError):
    def __init__(self, state: str, action: str) -> None:
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} a proposal in state '{state}'")


class NotFoundError(MasteryError, LookupError):
    pass
