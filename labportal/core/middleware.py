"""
Request logging middleware.

Sits outside SessionMiddleware so every request is covered, including
the ones rejected before a route runs.
"""

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from labportal.core.logging_config import bind_log_context, clear_log_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Ids forwarded by a proxy are reused only when they look like ids
_FORWARDED_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def request_id_for(request: Request) -> str:
    forwarded = request.headers.get(REQUEST_ID_HEADER, "")
    if _FORWARDED_ID.match(forwarded):
        return forwarded
    return uuid.uuid4().hex[:8]


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per request with status and duration.

    Probe and docs paths are not logged. Query strings are never logged
    since reset and verification links carry token hashes.
    """

    QUIET_PATHS = frozenset({"/health", "/ready", "/docs", "/redoc", "/openapi.json"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request_id_for(request)
        clear_log_context()
        bind_log_context(request_id=request_id)

        path = request.url.path
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error", extra={"method": request.method, "path": path})
            clear_log_context()
            raise

        if path not in self.QUIET_PATHS:
            status_code = response.status_code
            if status_code >= 500:
                level = logging.ERROR
            elif status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(
                level,
                f"{request.method} {path} -> {status_code}",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        clear_log_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
