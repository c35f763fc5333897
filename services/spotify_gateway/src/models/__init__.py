"""Database models for the Spotify gateway."""

from .base import Base
from .library import AUDIO_FEATURE_KEYS, Artist, ArtistGenre, Genre, LikedTrack, Track
from .user import User, UserCredential

__all__ = [
    "AUDIO_FEATURE_KEYS",
    "Artist",
    "ArtistGenre",
    "Base",
    "Genre",
    "LikedTrack",
    "Track",
    "User",
    "UserCredential",
]
