"""
HardbanRecords Publishing API - Request ID Middleware
======================================================

What:  Gives every request a correlation ID and returns it in X-Request-ID.
How:   Reuses a client-sent X-Request-ID when present, otherwise a short
       uuid4. The ID is stored in a ContextVar (for loggers and exception
       handlers) and on request.state (for route handlers).
When:  Outermost middleware, so the 403 from the CORS gate and 429s from the
       rate limiter carry the ID too.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied IDs longer than this are replaced
MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns and propagates the X-Request-ID correlation header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", "").strip()
        if not rid or len(rid) > MAX_REQUEST_ID_LENGTH:
            rid = uuid.uuid4().hex[:12]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
