"""Translate engine exceptions into HTTP responses.

Registered once in main.py with app.add_exception_handler(MasteryError, ...).
Bodies are ``{"error": message}`` plus ``"fields"`` for validation errors.
"""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.services.errors import (
    IllegalTransitionError,
    MasteryError,
    MasteryValidationError,
    NotFoundError,
    ReviewValidationError,
    RunPersistenceError,
    ScopeGap,
    ScopeResolutionError,
)

logger = logging.getLogger(__name__)


def _status_for(exc: MasteryError) -> int:
    if isinstance(exc, (MasteryValidationError, ReviewValidationError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ScopeResolutionError):
        if exc.gap is ScopeGap.RESOLUTION_FAILED:
            return status.HTTP_500_INTERNAL_SERVER_ERROR
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, IllegalTransitionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, RunPersistenceError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def mastery_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, MasteryError)
    status_code = _status_for(exc)
    content: dict = {"error": str(exc)}
    if isinstance(exc, (MasteryValidationError, ReviewValidationError)):
        content["fields"] = exc.fields
    if isinstance(exc, ScopeResolutionError):
        content["gap"] = exc.gap.value
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=content)
