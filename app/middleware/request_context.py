"""Request context middleware: request IDs and a per-request summary log line.

A snapshot run fans out over many concurrent tasks, and the log lines
they emit interleave with other requests.  Every line carries the
request ID of the HTTP call that started the work, so one batch can be
filtered out of the JSON stream:

  {"request_id": "abc", "message": "Snapshot run started", ...}
  {"request_id": "xyz", "message": "GET /v1/mastery/proposals -> 200 (3.1ms)"}
  {"request_id": "abc", "message": "Snapshot write failed, pair skipped", ...}

The ID lives in a ContextVar (see app.core.logging), not a thread-local:
FastAPI serves many requests on the same thread, and asyncio copies
the context into every task created with asyncio.gather/create_task,
so worker tasks inherit their request's ID.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import request_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line.

    Honors an incoming X-Request-ID header and echoes the ID back on
    the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
