"""Repositories for the Spotify gateway."""

from .credentials import CredentialStore
from .library import ArtistRecord, LibraryRepository

__all__ = ["ArtistRecord", "CredentialStore", "LibraryRepository"]
