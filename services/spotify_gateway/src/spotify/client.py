"""Async client for the Spotify Web API.

``SpotifyClient`` owns the pooled ``httpx.AsyncClient``. Each gateway call
gets a ``SpotifySession`` bound to one user's access token, so concurrent
calls for different users never share authorization state.
"""

from typing import Any

import httpx
import structlog

from services.spotify_gateway.src.config import SpotifyConfig
from services.spotify_gateway.src.exceptions import SpotifyAPIError

logger = structlog.get_logger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or response.reason_phrase)
    if isinstance(error, str):
        return str(payload.get("error_description") or error)
    return response.reason_phrase


class SpotifySession:
    """Spotify Web API calls made with a single access token."""

    def __init__(self, http: httpx.AsyncClient, access_token: str) -> None:
        self._http = http
        self.access_token = access_token

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> Any:
        """Issue one request and decode the JSON body.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            params: Query parameters; None values are dropped
            json: Optional JSON body

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            SpotifyAPIError: For transport failures and non-2xx responses
        """
        query = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            response = await self._http.request(
                method,
                path,
                params=query or None,
                json=json,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            logger.warning("Spotify request failed", method=method, path=path, error=str(e))
            raise SpotifyAPIError(f"Request to {path} failed: {e}", path=path) from e

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
        raise SpotifyAPIError(
            _error_message(response),
            status_code=response.status_code,
            retry_after=retry_after,
            path=path,
        )

    async def get_me(self) -> dict[str, Any]:
        return await self.request("GET", "/me")  # type: ignore[no-any-return]

    async def get_top_tracks(self, limit: int = 20, offset: int = 0, time_range: str = "medium_term") -> Any:
        return await self.request(
            "GET", "/me/top/tracks", params={"limit": limit, "offset": offset, "time_range": time_range}
        )

    async def get_top_artists(self, limit: int = 20, offset: int = 0, time_range: str = "medium_term") -> Any:
        return await self.request(
            "GET", "/me/top/artists", params={"limit": limit, "offset": offset, "time_range": time_range}
        )

    async def get_recently_played(self, limit: int = 20) -> Any:
        return await self.request("GET", "/me/player/recently-played", params={"limit": limit})

    async def get_saved_tracks(self, limit: int = 20, offset: int = 0) -> Any:
        return await self.request("GET", "/me/tracks", params={"limit": limit, "offset": offset})

    async def contains_saved_tracks(self, track_ids: list[str]) -> list[bool]:
        result = await self.request("GET", "/me/tracks/contains", params={"ids": ",".join(track_ids)})
        return list(result or [])

    async def get_currently_playing(self) -> Any:
        """Get the currently playing item; None when nothing is playing."""
        return await self.request("GET", "/me/player/currently-playing")

    async def get_artists(self, artist_ids: list[str]) -> Any:
        return await self.request("GET", "/artists", params={"ids": ",".join(artist_ids)})

    async def search_artists(self, query: str, limit: int = 1) -> Any:
        return await self.request("GET", "/search", params={"q": query, "type": "artist", "limit": limit})

    async def get_audio_features(self, track_ids: list[str]) -> Any:
        return await self.request("GET", "/audio-features", params={"ids": ",".join(track_ids)})

    async def get_my_playlists(self, limit: int = 20, offset: int = 0) -> Any:
        return await self.request("GET", "/me/playlists", params={"limit": limit, "offset": offset})

    async def get_playlist(self, playlist_id: str) -> Any:
        return await self.request("GET", f"/playlists/{playlist_id}")

    async def get_playlist_tracks(self, playlist_id: str, limit: int = 100, offset: int = 0) -> Any:
        return await self.request(
            "GET", f"/playlists/{playlist_id}/tracks", params={"limit": limit, "offset": offset}
        )

    async def create_playlist(
        self,
        name: str,
        description: str = "",
        public: bool = False,
        collaborative: bool = False,
    ) -> Any:
        return await self.request(
            "POST",
            "/me/playlists",
            json={
                "name": name,
                "description": description,
                "public": public,
                "collaborative": collaborative,
            },
        )

    async def add_tracks_to_playlist(self, playlist_id: str, uris: list[str]) -> Any:
        return await self.request("POST", f"/playlists/{playlist_id}/tracks", json={"uris": uris})

    async def get_recommendations(self, params: dict[str, Any]) -> Any:
        return await self.request("GET", "/recommendations", params=params)


class SpotifyClient:
    """Pooled HTTP transport for the Spotify Web API."""

    def __init__(self, config: SpotifyConfig, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            config: Spotify configuration
            http_client: Optional preconfigured client, used by tests
        """
        self.config = config
        self._http = http_client or httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=httpx.Timeout(config.timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            headers={"Accept": "application/json"},
        )

    def authorized(self, access_token: str) -> SpotifySession:
        """Get a session that authenticates with the given access token."""
        return SpotifySession(self._http, access_token)

    async def close(self) -> None:
        await self._http.aclose()
