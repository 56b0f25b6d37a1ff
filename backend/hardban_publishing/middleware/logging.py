"""
HardbanRecords Publishing API - Access Log Middleware
======================================================

What:  One structured log line per request on `hardban_publishing.access`.
How:   Times the downstream call and logs method, path, status, duration,
       request ID, client IP, user ID and the rate limit remaining count
       (when a limiter ran for the request).
When:  Directly inside RequestIDMiddleware, so CORS rejections (403) and
       rate limit rejections (429) are logged as well.

Request bodies and Authorization headers are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from hardban_publishing.middleware.client import get_client_ip
from hardban_publishing.middleware.request_id import request_id_var

logger = logging.getLogger("hardban_publishing.access")

QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request at a level chosen from the response status:
    5xx → ERROR, 4xx → WARNING, everything else → INFO.
    """

    def __init__(self, app, trust_proxy: bool = False):
        super().__init__(app)
        self.trust_proxy = trust_proxy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        client_ip = get_client_ip(request, self.trust_proxy)
        user = getattr(request.state, "user", None)
        user_id = getattr(user, "id", None)
        rate_limit = getattr(request.state, "rate_limit", None)

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "user_id": user_id,
                "rate_limit_remaining": getattr(rate_limit, "remaining", None),
            },
        )
        return response
