"""OAuth2 exchanges against the Spotify accounts service."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from services.spotify_gateway.src.config import SpotifyConfig
from services.spotify_gateway.src.exceptions import AuthExchangeError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair returned by one exchange."""

    access_token: str
    refresh_token: str
    expires_in: int | None = None


class TokenRefresher:
    """Exchanges authorization codes and refresh tokens for access tokens.

    Requests use client-credentials basic auth against the accounts token
    endpoint. Any non-success response raises ``AuthExchangeError``.
    """

    def __init__(self, config: SpotifyConfig, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the refresher.

        Args:
            config: Spotify configuration with client credentials
            http_client: Optional preconfigured client, used by tests
        """
        self.config = config
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout))

    def authorize_url(self, state: str) -> str:
        """Build the URL a user visits to grant access.

        Args:
            state: Opaque value echoed back to the redirect URI (the external user id)

        Returns:
            Authorize URL requesting every scope the gateway uses
        """
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.config.client_id,
                "scope": " ".join(self.config.scopes),
                "redirect_uri": self.config.redirect_uri,
                "state": state,
            }
        )
        return f"{self.config.authorize_url}?{query}"

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new token pair.

        Spotify does not always rotate the refresh token; when the response
        omits one, the input token is returned in the pair.

        Args:
            refresh_token: Current refresh token

        Returns:
            New token pair

        Raises:
            AuthExchangeError: If the exchange fails
        """
        payload = await self._post_form({"grant_type": "refresh_token", "refresh_token": refresh_token})
        logger.info("Access token refreshed", rotated="refresh_token" in payload)
        return TokenPair(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or refresh_token,
            expires_in=payload.get("expires_in"),
        )

    async def exchange_code(self, code: str) -> TokenPair:
        """Exchange an authorization code for the initial token pair.

        Raises:
            AuthExchangeError: If the exchange fails or returns no refresh token
        """
        payload = await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            }
        )
        if not payload.get("refresh_token"):
            raise AuthExchangeError("Authorization code exchange returned no refresh token")
        return TokenPair(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_in=payload.get("expires_in"),
        )

    async def _post_form(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self.config.token_url,
                data=form,
                auth=httpx.BasicAuth(self.config.client_id, self.config.client_secret),
            )
        except httpx.HTTPError as e:
            logger.error("Token request failed", grant_type=form["grant_type"], error=str(e))
            raise AuthExchangeError(f"Token request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "Token request rejected",
                grant_type=form["grant_type"],
                status_code=response.status_code,
            )
            raise AuthExchangeError(
                f"Spotify token request failed (HTTP {response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthExchangeError("Token endpoint returned invalid JSON") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthExchangeError("Token endpoint returned no access token")
        return payload

    async def close(self) -> None:
        await self._http.aclose()
