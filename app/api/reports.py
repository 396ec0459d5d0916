"""Learner progress report, read-through cached.

  GET /v1/mastery/reports/progress?learner_id=&snapshot_run_id=

1. build the cache key from (run, learner)
2. hit  -> return the cached JSON
3. miss -> build from snapshots and levels, store for 300 s, return

Review actions delete the key (see proposals.py), so a reviewer's
decision shows up on the next read rather than after the TTL.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from app.api.dependencies import Repos, StaffPrincipal
from app.api.schemas import ProgressReportOut
from app.core.metrics import REPORT_CACHE
from app.services.cache import cache_service
from app.services.errors import NotFoundError
from app.services.progress_report import (
    REPORT_CACHE_TTL,
    build_progress_report,
    report_cache_key,
)

router = APIRouter(prefix="/v1/mastery/reports", tags=["reports"])


@router.get("/progress", response_model=ProgressReportOut)
async def get_progress_report(
    learner_id: UUID,
    snapshot_run_id: UUID,
    principal: StaffPrincipal,
    repos: Repos,
) -> ProgressReportOut:
    assert principal.org_id is not None
    # tenant check before the cache so a cached report never crosses orgs
    if await repos.snapshots.get_run(snapshot_run_id, principal.org_id) is None:
        raise NotFoundError("Snapshot run not found")

    cache_key = report_cache_key(snapshot_run_id, learner_id)
    cached = await cache_service.get(cache_key)
    if cached is not None:
        REPORT_CACHE.labels(result="hit").inc()
        return ProgressReportOut.model_validate_json(cached)
    REPORT_CACHE.labels(result="miss").inc()

    report = ProgressReportOut.model_validate(
        await build_progress_report(
            snapshot_repo=repos.snapshots,
            mastery_repo=repos.mastery,
            run_id=snapshot_run_id,
            learner_id=learner_id,
            org_id=principal.org_id,
        )
    )
    await cache_service.set(cache_key, report.model_dump_json(), REPORT_CACHE_TTL)
    return report
