"""Request ID middleware — correlates every log line of a request."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("dorametrics.api")

REQUEST_ID_HEADER = "X-Request-ID"

# health checks hit these every few seconds
_QUIET_PATHS = frozenset({"/health"})


def _coerce_request_id(value: str | None) -> str:
    """Keep a caller-supplied UUID, otherwise mint a new one."""
    if value:
        try:
            return str(uuid.UUID(value))
        except ValueError:
            pass
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind ``request_id``, method and path into structlog contextvars."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _coerce_request_id(request.headers.get(REQUEST_ID_HEADER))
        path = request.url.path
        quiet = path in _QUIET_PATHS

        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("http.request_failed", duration_ms=_elapsed_ms(start))
            raise
        else:
            if not quiet:
                log.info(
                    "http.request",
                    status_code=response.status_code,
                    duration_ms=_elapsed_ms(start),
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            structlog.contextvars.reset_contextvars(**tokens)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
