"""FastAPI application factory for the Spotify gateway."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response

from services.spotify_gateway.src.config import ServiceConfig
from services.spotify_gateway.src.metrics import GatewayMetrics
from services.spotify_gateway.src.service import SpotifyGatewayService

from .error_handlers import register_exception_handlers
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware
from .routes import auth_router, router
from .schemas import HealthResponse

SERVICE_NAME = "spotify_gateway"
VERSION = "0.1.0"


def create_app(
    service: SpotifyGatewayService | None = None,
    metrics: GatewayMetrics | None = None,
    service_config: ServiceConfig | None = None,
    lifespan: Callable[[FastAPI], Any] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Service instance; normally installed on ``app.state`` at startup
        metrics: Metrics collector served at ``/metrics``
        service_config: HTTP-facing settings such as dev mode and application id
        lifespan: Optional lifespan handler that builds and tears down components

    Returns:
        The configured application
    """
    app = FastAPI(
        title="Spotify Gateway",
        description="Spotify Web API gateway with per-user token management",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.metrics = metrics
    app.state.service_config = service_config

    # Middleware runs in reverse order of registration
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint."""
        current: SpotifyGatewayService | None = request.app.state.service
        return HealthResponse(
            status="healthy" if current is not None else "starting",
            service=SERVICE_NAME,
            version=VERSION,
            timestamp=datetime.now(UTC),
            upstream_calls=current.gateway.context.calls if current is not None else 0,
        )

    @app.get("/metrics")
    async def metrics_endpoint(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        collector: GatewayMetrics | None = request.app.state.metrics
        if collector is None:
            return Response(status_code=404)
        body, content_type = collector.render()
        return Response(content=body, media_type=content_type)

    return app
