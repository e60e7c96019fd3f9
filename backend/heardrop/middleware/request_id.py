"""
HEARDROP Backend — Request ID Middleware
==========================================

What:  Assigns a short correlation ID to each request and echoes it back in
       the X-Request-ID response header.
Why:   Every log line and every error body carries the same ID, so a user
       report ("request a1b2c3d4 failed") maps straight to the server logs.
How:   Reuses a client-supplied X-Request-ID when present, otherwise
       generates one, and stores it in a ContextVar for the loggers and
       exception handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied IDs longer than this are truncated
MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        rid = rid[:MAX_REQUEST_ID_LENGTH]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
