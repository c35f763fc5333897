"""Playlist construction helpers."""

from .materializer import PlaylistMaterializer

__all__ = ["PlaylistMaterializer"]
