"""Request-ID middleware — injects ``X-Request-ID`` on every request.

The ID is taken from the incoming header when present, generated
otherwise, bound into the structlog context for the duration of the
request and echoed on the response.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from functionspine.logging import LogContext, get_logger

REQUEST_ID_HEADER = "X-Request-ID"

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request/response cycle."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        with LogContext(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all for exceptions that escape the dispatcher."""
    logger.error("unhandled_exception", path=request.url.path, exc_info=exc)
    config = getattr(request.app.state, "config", None)
    if config is not None and config.show_error_details:
        return PlainTextResponse(f"{type(exc).__name__}: {exc}", status_code=500)
    return PlainTextResponse("Unexpected internal error", status_code=500)


__all__ = ["RequestIDMiddleware", "unhandled_exception_handler", "REQUEST_ID_HEADER"]
