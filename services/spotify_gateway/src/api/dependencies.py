"""FastAPI dependencies for service access and request authentication."""

import logging

from fastapi import Depends, Header, HTTPException, Request, status

from services.spotify_gateway.src.config import ServiceConfig
from services.spotify_gateway.src.service import SpotifyGatewayService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> SpotifyGatewayService:
    """Get the service instance created at startup."""
    service: SpotifyGatewayService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not initialized")
    return service


def get_service_config(request: Request) -> ServiceConfig:
    config: ServiceConfig | None = getattr(request.app.state, "service_config", None)
    return config or ServiceConfig()


async def authenticate_request(
    user_id: str,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    x_application_id: str | None = Header(None, alias="X-Application-Id"),
    service: SpotifyGatewayService = Depends(get_service),
    config: ServiceConfig = Depends(get_service_config),
) -> str:
    """Authorize a request acting for the external user in the path.

    Dev mode skips the check. A trusted application id is accepted for any
    user; otherwise the API key must match the one issued to that user.

    Returns:
        The authorized external user id

    Raises:
        HTTPException: 401 if no valid credential was presented
    """
    if config.dev_mode:
        return user_id

    if x_application_id and config.application_id and x_application_id == config.application_id:
        return user_id

    if x_api_key and await service.verify_api_token(user_id, x_api_key):
        return user_id

    logger.warning(f"Rejected request for user {user_id}: invalid or missing API key")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
    )
