"""
Cordova CMS Backend - Request ID Middleware
=============================================

What:  Assigns a correlation id to each request and echoes it back.
How:   Reuses the client's X-Request-ID header when present, otherwise
       generates a short id; stores it in a ContextVar and request.state.
Who:   Read by RequestLoggingMiddleware and by every exception handler,
       which put it into error bodies.

Unhandled exceptions are answered here rather than by the app-level
`Exception` handler: that one runs in Starlette's ServerErrorMiddleware,
outside this middleware, where the id is no longer in context.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

UNEXPECTED_ERROR_CODE = "internal_server_error"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again or contact support."

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to the request context and the response headers."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("[%s] Unexpected error: %s", rid, str(e), exc_info=True)
            response = JSONResponse(
                status_code=500,
                content={
                    "error": UNEXPECTED_ERROR_CODE,
                    "message": UNEXPECTED_ERROR_MESSAGE,
                    "request_id": rid,
                },
            )
        response.headers[REQUEST_ID_HEADER] = rid
        return response
