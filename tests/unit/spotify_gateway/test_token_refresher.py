"""Unit tests for OAuth token exchanges."""

import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from services.spotify_gateway.src.config import SpotifyConfig
from services.spotify_gateway.src.exceptions import AuthExchangeError
from services.spotify_gateway.src.spotify.auth import TokenRefresher


@pytest.fixture
def spotify_config():
    return SpotifyConfig(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost:8000/callback",
        accounts_url="https://accounts.test",
    )


@pytest.fixture
def token_endpoint():
    """Mock token endpoint recording requests and replying with a scripted response."""

    class Endpoint:
        def __init__(self):
            self.requests: list[httpx.Request] = []
            self.response = httpx.Response(
                200,
                json={"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600},
            )

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.response

        def form(self, index: int = -1) -> dict[str, str]:
            body = parse_qs(self.requests[index].content.decode())
            return {key: values[0] for key, values in body.items()}

    return Endpoint()


@pytest.fixture
def refresher(spotify_config, token_endpoint):
    return TokenRefresher(spotify_config, httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint)))


class TestAuthorizeUrl:
    """Test the authorize URL."""

    def test_contains_client_scopes_and_state(self, refresher):
        url = urlparse(refresher.authorize_url("ext-1"))
        query = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://accounts.test/authorize"
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["client-id"]
        assert query["state"] == ["ext-1"]
        assert query["redirect_uri"] == ["http://localhost:8000/callback"]
        assert "user-library-read" in query["scope"][0].split(" ")


class TestRefresh:
    """Test refresh-token exchanges."""

    @pytest.mark.asyncio
    async def test_posts_refresh_grant_with_basic_auth(self, refresher, token_endpoint):
        pair = await refresher.refresh("old-refresh")

        request = token_endpoint.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://accounts.test/api/token"
        expected_auth = base64.b64encode(b"client-id:client-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"
        assert token_endpoint.form() == {"grant_type": "refresh_token", "refresh_token": "old-refresh"}
        assert (pair.access_token, pair.refresh_token, pair.expires_in) == ("new-access", "new-refresh", 3600)

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_when_not_rotated(self, refresher, token_endpoint):
        token_endpoint.response = httpx.Response(200, json={"access_token": "new-access", "expires_in": 3600})

        pair = await refresher.refresh("old-refresh")

        assert pair.refresh_token == "old-refresh"

    @pytest.mark.asyncio
    async def test_rejected_refresh(self, refresher, token_endpoint):
        token_endpoint.response = httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(AuthExchangeError) as exc_info:
            await refresher.refresh("revoked")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_access_token(self, refresher, token_endpoint):
        token_endpoint.response = httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(AuthExchangeError):
            await refresher.refresh("old-refresh")

    @pytest.mark.asyncio
    async def test_invalid_json(self, refresher, token_endpoint):
        token_endpoint.response = httpx.Response(200, content=b"<html>")

        with pytest.raises(AuthExchangeError):
            await refresher.refresh("old-refresh")

    @pytest.mark.asyncio
    async def test_transport_failure(self, spotify_config):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        refresher = TokenRefresher(spotify_config, httpx.AsyncClient(transport=httpx.MockTransport(fail)))

        with pytest.raises(AuthExchangeError):
            await refresher.refresh("old-refresh")


class TestExchangeCode:
    """Test authorization-code exchanges."""

    @pytest.mark.asyncio
    async def test_exchanges_code(self, refresher, token_endpoint):
        pair = await refresher.exchange_code("auth-code")

        assert token_endpoint.form() == {
            "grant_type": "authorization_code",
            "code": "auth-code",
            "redirect_uri": "http://localhost:8000/callback",
        }
        assert pair.refresh_token == "new-refresh"

    @pytest.mark.asyncio
    async def test_requires_refresh_token(self, refresher, token_endpoint):
        token_endpoint.response = httpx.Response(200, json={"access_token": "new-access"})

        with pytest.raises(AuthExchangeError):
            await refresher.exchange_code("auth-code")
