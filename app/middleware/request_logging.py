"""Access log for API calls.

Only ``/api`` paths are logged, one line per request. Request and
response bodies carry policy text and questions, so they are never
written to the log.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("policylens.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith("/api"):
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - started) * 1000)

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level, "%s %s %d in %dms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response
