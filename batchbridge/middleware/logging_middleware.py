"""
Per-request logging for the tool endpoints.

Each request gets an id that is echoed back and bound into the structlog
context, so Relay and RPC calls made while serving it can be correlated.
Health probes are logged at debug level.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("batchbridge.http")

REQUEST_ID_HEADER = "x-request-id"
PROBE_PATHS = frozenset({"/healthz", "/"})


def _level_for(path: str, status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "debug" if path in PROBE_PATHS else "info"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, tool=path.rsplit("/", 1)[-1] or "root")

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            getattr(logger, _level_for(path, status_code))(
                "tool_request",
                method=request.method,
                path=path,
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
