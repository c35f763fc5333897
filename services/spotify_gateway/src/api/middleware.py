"""API middleware for error handling and request logging."""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

QUIET_PATHS = {"/health", "/metrics"}


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into a 500 response."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                "Unhandled exception in request",
                exc_info=True,
                path=request.url.path,
                method=request.method,
            )
            debug_mode = logging.getLogger().isEnabledFor(logging.DEBUG)
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": "INTERNAL_SERVER_ERROR",
                        "message": str(e) if debug_mode else "An unexpected error occurred",
                    }
                },
            )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with a request id, skipping health and metrics probes."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info("Request started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        logger.info(
            "Request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )
        response.headers["X-Request-ID"] = request_id
        return response
