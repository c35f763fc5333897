"""Spotify Web API access: HTTP client, OAuth exchanges and operation descriptors."""

from .auth import TokenPair, TokenRefresher
from .client import SpotifyClient, SpotifySession
from .operations import Operation

__all__ = ["Operation", "SpotifyClient", "SpotifySession", "TokenPair", "TokenRefresher"]
