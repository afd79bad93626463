"""Request logging middleware with request ID tracking."""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from roleswitch.core.logging import (
    clear_request_id,
    get_logger,
    log_error,
    set_request_id,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROBE_PATHS = frozenset({"/health", "/ready"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request with its duration and a request id.

    The id is taken from ``X-Request-ID`` when the client sends one, kept in
    a context variable for the log formatter, and echoed on the response.
    Health probes are logged at DEBUG so they don't drown the INFO stream.
    """

    def __init__(self, app: ASGIApp, quiet_paths: frozenset[str] = PROBE_PATHS) -> None:
        super().__init__(app)
        self.quiet_paths = quiet_paths

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_id(request_id)

        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"
        level = logging.DEBUG if path in self.quiet_paths else logging.INFO
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            log_error(
                logger,
                f"Request failed: {method} {path}",
                error=e,
                extra={
                    "event_type": "request_failed",
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "client_ip": client_host,
                },
            )
            clear_request_id()
            raise

        logger.log(
            level,
            f"{method} {path} - {response.status_code}",
            extra={
                "event_type": "request_completed",
                "method": method,
                "path": path,
                "query_params": str(request.query_params),
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "client_ip": client_host,
            },
        )
        clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
