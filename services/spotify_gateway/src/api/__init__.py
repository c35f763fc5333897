"""HTTP API for the Spotify gateway."""

from .app import create_app

__all__ = ["create_app"]
