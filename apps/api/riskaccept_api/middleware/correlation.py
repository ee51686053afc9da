"""Correlation ID middleware.

Every request carries an ``x-correlation-id`` that follows it into history
logging, notification tasks and the response headers.
"""

import logging
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"
_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_correlation_id(raw: str | None) -> str:
    """Accept a caller-supplied id only if it is safe to log and forward."""
    if raw and _VALID_ID.match(raw):
        return raw
    return str(uuid.uuid4())


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to each request and log its outcome."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        response.headers[CORRELATION_HEADER] = correlation_id
        if request.url.path.startswith("/v1/") or request.url.path.startswith("/internal/"):
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={
                    "correlation_id": correlation_id,
                    "user_id": request.headers.get("x-user-id"),
                    "status_code": response.status_code,
                    "elapsed_ms": elapsed_ms,
                },
            )
        return response
