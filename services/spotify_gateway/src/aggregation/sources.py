"""Track listings a caller can draw candidate tracks from."""

from enum import Enum
from typing import Any

from services.spotify_gateway.src.spotify import operations as ops
from services.spotify_gateway.src.spotify.operations import Operation


class TrackSource(str, Enum):
    """Upstream listings of a user's tracks."""

    MOST_PLAYED = "most_played"
    RECENTLY_PLAYED = "recently_played"
    LIKED_TRACKS = "liked_tracks"

    def operation(self, limit: int, offset: int = 0) -> Operation:
        """Build the operation fetching one page of this listing.

        The recently-played listing is cursor based; it ignores ``offset``
        and its pages carry no ``total``.
        """
        if self is TrackSource.MOST_PLAYED:
            return ops.top_tracks(limit, offset)
        if self is TrackSource.RECENTLY_PLAYED:
            return ops.recently_played(limit)
        return ops.saved_tracks(limit, offset)

    def track_of(self, item: Any) -> dict[str, Any] | None:
        """Get the track object from one item of this listing."""
        if not isinstance(item, dict):
            return None
        track = item if self is TrackSource.MOST_PLAYED else item.get("track")
        return track if isinstance(track, dict) else None


def track_id(track: dict[str, Any] | None) -> str | None:
    if not track:
        return None
    value = track.get("id")
    return value if isinstance(value, str) else None


def primary_artist_id(track: dict[str, Any] | None) -> str | None:
    if not track:
        return None
    artists = track.get("artists") or []
    if not artists or not isinstance(artists[0], dict):
        return None
    return artists[0].get("id")


def track_uri(track: dict[str, Any]) -> str:
    return track.get("uri") or f"spotify:track:{track['id']}"
