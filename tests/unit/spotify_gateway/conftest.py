"""Configuration and fixtures for Spotify gateway tests."""

import pytest

from services.spotify_gateway.src.config import GatewayConfig
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.gateway.context import GatewayContext
from tests.unit.spotify_gateway.fakes import USER_ID, FakeCredentialStore, FakeRefresher, FakeSpotify


@pytest.fixture
def credentials():
    """Credential store seeded with one freshly authorized user."""
    store = FakeCredentialStore()
    store.seed(USER_ID)
    return store


@pytest.fixture
def refresher():
    return FakeRefresher()


@pytest.fixture
def spotify():
    return FakeSpotify()


@pytest.fixture
def gateway_config():
    """Gateway tuning without the inter-request delay."""
    return GatewayConfig(request_delay=0, default_retry_after=0.01)


@pytest.fixture
def make_gateway(credentials, refresher, spotify, gateway_config):
    """Factory building a CallGateway over the fakes."""

    def _make(cache=None, config=None, metrics=None, cache_ttl=3600):
        return CallGateway(
            credentials,
            refresher,
            spotify,
            cache=cache,
            context=GatewayContext(),
            config=config or gateway_config,
            metrics=metrics,
            cache_ttl=cache_ttl,
        )

    return _make


@pytest.fixture
def gateway(make_gateway):
    return make_gateway()
