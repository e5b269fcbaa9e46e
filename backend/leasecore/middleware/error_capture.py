"""Middleware that logs unhandled exceptions and 5xx responses.

Domain errors never reach it; they are turned into 4xx responses by the
exception handler in ``leasecore.main``.
"""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("leasecore.middleware")


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Logs every failed request with its method, path and duration."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = round((time.time() - start) * 1000, 2)
            logger.exception(
                "Unhandled error on %s %s after %sms",
                request.method, request.url.path, elapsed_ms,
            )
            raise

        if response.status_code >= 500:
            elapsed_ms = round((time.time() - start) * 1000, 2)
            logger.error(
                "%s %s returned %d after %sms",
                request.method, request.url.path, response.status_code, elapsed_ms,
            )
        return response
