from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.config import SETTINGS
from app.db.engine import async_session_factory, session_scope
from app.models.principal import Principal
from app.repos.mastery_repo import InMemoryMasteryModelRepo, MasteryModelRepo
from app.repos.pg_mastery_repo import PgMasteryModelRepo
from app.repos.pg_school_repo import PgSchoolDataRepo
from app.repos.pg_snapshot_repo import PgSnapshotRepo, PgSnapshotRunWriter
from app.repos.school_repo import InMemorySchoolDataRepo, SchoolDataRepo
from app.repos.snapshot_repo import (
    InMemorySnapshotRepo,
    SnapshotRepo,
    SnapshotRunWriter,
)
from app.services import token_service
from app.services.snapshot_runner import RunnerConfig

logger = logging.getLogger(__name__)

# Tokens are issued by the platform auth service, not here.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# Roles allowed to run snapshots and review proposals.
STAFF_ROLES = frozenset({"admin", "principal", "teacher", "faculty", "mentor"})


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
        user_id = UUID(claims["sub"])
        org_id = UUID(claims["org_id"]) if claims.get("org_id") else None
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=user_id,
        roles=frozenset(claims.get("roles", [])),
        org_id=org_id,
    )
    logger.debug(
        "Token validated for user=%s roles=%s org=%s",
        principal.user_id,
        principal.roles,
        principal.org_id,
    )
    return principal


def require_any_role(roles: frozenset[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role(STAFF_ROLES))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_staff_in_org(
    principal: Annotated[Principal, Depends(require_any_role(STAFF_ROLES))],
) -> Principal:
    """Staff principal with an organization context.

    Every engine endpoint reads or writes organization data, so the
    org_id claim is mandatory.
    """
    if principal.org_id is None:
        logger.warning("No organization context for user=%s", principal.user_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization context required",
        )
    return principal


StaffPrincipal = Annotated[Principal, Depends(require_staff_in_org)]


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Repositories:
    school: SchoolDataRepo
    mastery: MasteryModelRepo
    snapshots: SnapshotRepo
    run_writer: SnapshotRunWriter


# Used when DATABASE_URL is unset.  Tests seed and reset these.
school_repo = InMemorySchoolDataRepo()
mastery_repo = InMemoryMasteryModelRepo()
snapshot_repo = InMemorySnapshotRepo()


async def get_repositories() -> AsyncGenerator[Repositories, None]:
    """Request-scoped repositories.

    PostgreSQL: one transaction per request for reads and reviews.
    School data reads and snapshot run writes open their own sessions.
    """
    if async_session_factory is None:
        yield Repositories(
            school=school_repo,
            mastery=mastery_repo,
            snapshots=snapshot_repo,
            run_writer=snapshot_repo,
        )
        return
    async with session_scope() as session:
        yield Repositories(
            school=PgSchoolDataRepo(async_session_factory),
            mastery=PgMasteryModelRepo(session),
            snapshots=PgSnapshotRepo(session),
            run_writer=PgSnapshotRunWriter(async_session_factory),
        )


def get_runner_config() -> RunnerConfig:
    return RunnerConfig.from_settings(SETTINGS)


Repos = Annotated[Repositories, Depends(get_repositories)]
