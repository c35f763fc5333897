"""
Main entry point for the Spotify gateway service.

Builds the gateway components at startup and serves the HTTP API.
"""

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from services.spotify_gateway.src.api.app import VERSION, create_app
from services.spotify_gateway.src.cache.result_cache import ResultCache, create_result_cache
from services.spotify_gateway.src.config import get_config
from services.spotify_gateway.src.database import close_db_manager, get_db_manager
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.gateway.context import GatewayContext
from services.spotify_gateway.src.metrics import GatewayMetrics
from services.spotify_gateway.src.repositories.credentials import CredentialStore
from services.spotify_gateway.src.repositories.library import LibraryRepository
from services.spotify_gateway.src.service import SpotifyGatewayService
from services.spotify_gateway.src.spotify.auth import TokenRefresher
from services.spotify_gateway.src.spotify.client import SpotifyClient


# Configure structured logging
def setup_logging() -> None:
    """Configure structured logging for the service."""
    config = get_config()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, config.service.log_level.upper()),
    )


class AppContext:
    """Application context manager for lifecycle components."""

    def __init__(self) -> None:
        self.client: SpotifyClient | None = None
        self.refresher: TokenRefresher | None = None
        self.cache: ResultCache | None = None
        self.metrics: GatewayMetrics | None = None
        self.service: SpotifyGatewayService | None = None

    async def startup(self) -> SpotifyGatewayService:
        """Initialize application components."""
        logger = structlog.get_logger(__name__)
        config = get_config()

        logger.info("Starting Spotify gateway", version=VERSION, dev_mode=config.service.dev_mode)

        db_manager = get_db_manager()
        credentials = CredentialStore(db_manager)
        library = LibraryRepository(db_manager)

        self.cache = create_result_cache(config.cache)
        self.client = SpotifyClient(config.spotify)
        self.refresher = TokenRefresher(config.spotify)
        self.metrics = GatewayMetrics()

        gateway = CallGateway(
            credentials,
            self.refresher,
            self.client,
            cache=self.cache,
            context=GatewayContext(),
            config=config.gateway,
            metrics=self.metrics,
            cache_ttl=config.cache.default_ttl,
        )
        self.service = SpotifyGatewayService(
            gateway,
            credentials,
            self.refresher,
            cache=self.cache,
            library=library,
            config=config,  # type: ignore[arg-type]
        )
        logger.info("Spotify gateway initialized", cache_enabled=config.cache.enabled)
        return self.service

    async def shutdown(self) -> None:
        """Clean up application components."""
        logger = structlog.get_logger(__name__)
        logger.info("Shutting down Spotify gateway")

        if self.service:
            self.service.gateway.context.rate_limit.cancel()
        if self.client:
            await self.client.close()
        if self.refresher:
            await self.refresher.close()
        if self.cache:
            await self.cache.close()
        await close_db_manager()

        logger.info("Spotify gateway shutdown complete")


# Application context singleton
_app_context = AppContext()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events."""
    app.state.service = await _app_context.startup()
    app.state.metrics = _app_context.metrics
    app.state.service_config = get_config().service
    try:
        yield
    finally:
        await _app_context.shutdown()


async def main() -> None:
    """Main async entry point."""
    setup_logging()
    config = get_config()

    if not config.spotify.client_id or not config.spotify.client_secret:
        logger = structlog.get_logger(__name__)
        logger.error(
            "Configuration validation failed",
            errors=["SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET are required"],
        )
        sys.exit(1)

    app = create_app(lifespan=lifespan)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.service.host,
        port=config.service.port,
        log_level=config.service.log_level.lower(),
    )

    server = uvicorn.Server(uvicorn_config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
