"""Error handlers for API endpoints.

Converts gateway exceptions to HTTP responses with a uniform body:
``{"error": {"code", "message", "details"}}``.
"""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..exceptions import (
    AuthExchangeError,
    InvalidRequestError,
    PersistenceError,
    RateLimitedError,
    SpotifyAPIError,
    SpotifyGatewayError,
    UpstreamCallFailedError,
    UserNotAuthenticatedError,
)

logger = logging.getLogger(__name__)

STATUS_MAP: dict[type[SpotifyGatewayError], int] = {
    UserNotAuthenticatedError: status.HTTP_401_UNAUTHORIZED,
    AuthExchangeError: status.HTTP_401_UNAUTHORIZED,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    UpstreamCallFailedError: status.HTTP_502_BAD_GATEWAY,
    SpotifyAPIError: status.HTTP_502_BAD_GATEWAY,
    RateLimitedError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def gateway_exception_handler(request: Request, exc: SpotifyGatewayError) -> JSONResponse:
    """Handle SpotifyGatewayError exceptions.

    Args:
        request: Request object.
        exc: Exception instance.

    Returns:
        JSON response with error details.
    """
    status_code = STATUS_MAP.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")

    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(int(exc.retry_after) or 1)

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": exc.message,
                "details": exc.details,
            }
        },
        headers=headers,
    )


def register_exception_handlers(app: Any) -> None:
    """Register exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.add_exception_handler(SpotifyGatewayError, gateway_exception_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": f"HTTP_{exc.status_code}",
                    "message": exc.detail,
                }
            },
            headers=getattr(exc, "headers", None),
        )
