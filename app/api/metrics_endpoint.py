"""Prometheus scrape endpoint.

Plain-text exposition format, e.g.:

  # TYPE mastery_snapshots_created_total counter
  mastery_snapshots_created_total{scope_kind="section"} 96.0
  mastery_review_actions_total{action="approve"} 12.0

Left open here; restrict it at the ingress in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
