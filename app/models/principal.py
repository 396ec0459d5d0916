from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.

        user_id: subject from the JWT (a profile id)
        roles: platform roles (admin, principal, teacher, faculty, mentor, ...)
        org_id: organization the caller acts within, from the org_id claim
    """

    user_id: UUID
    roles: frozenset[str]
    org_id: UUID | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return bool(self.roles & roles)
