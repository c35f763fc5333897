"""Operation descriptors for upstream Spotify calls.

An ``Operation`` captures the parameters of one upstream call and a closure
that performs it against a token-bound ``SpotifySession``. The gateway
dispatches every descriptor through the same invocation path and derives
cache keys from ``name`` and ``params``. Only idempotent reads are marked
cacheable.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from services.spotify_gateway.src.spotify.client import SpotifySession

SessionCall = Callable[[SpotifySession], Awaitable[Any]]


@dataclass(frozen=True)
class Operation:
    """One upstream call with its bound parameters."""

    name: str
    call: SessionCall
    params: dict[str, Any] = field(default_factory=dict)
    cacheable: bool = False

    @property
    def identity(self) -> str:
        """Stable identity of the operation and its parameters."""
        return f"{self.name}:{json.dumps(self.params, sort_keys=True, default=str, separators=(',', ':'))}"


def get_profile() -> Operation:
    return Operation("me", lambda session: session.get_me(), cacheable=True)


def top_tracks(limit: int, offset: int = 0, time_range: str = "medium_term") -> Operation:
    return Operation(
        "top_tracks",
        lambda session: session.get_top_tracks(limit, offset, time_range),
        {"limit": limit, "offset": offset, "time_range": time_range},
        cacheable=True,
    )


def top_artists(limit: int, offset: int = 0, time_range: str = "medium_term") -> Operation:
    return Operation(
        "top_artists",
        lambda session: session.get_top_artists(limit, offset, time_range),
        {"limit": limit, "offset": offset, "time_range": time_range},
        cacheable=True,
    )


def recently_played(limit: int) -> Operation:
    return Operation("recently_played", lambda session: session.get_recently_played(limit), {"limit": limit})


def saved_tracks(limit: int, offset: int = 0) -> Operation:
    return Operation(
        "saved_tracks",
        lambda session: session.get_saved_tracks(limit, offset),
        {"limit": limit, "offset": offset},
    )


def contains_saved_tracks(track_ids: list[str]) -> Operation:
    ids = list(track_ids)
    return Operation("contains_saved_tracks", lambda session: session.contains_saved_tracks(ids), {"ids": ids})


def currently_playing() -> Operation:
    return Operation("currently_playing", lambda session: session.get_currently_playing())


def artists(artist_ids: list[str]) -> Operation:
    ids = list(artist_ids)
    return Operation("artists", lambda session: session.get_artists(ids), {"ids": ids}, cacheable=True)


def search_artist(name: str) -> Operation:
    return Operation(
        "search_artist",
        lambda session: session.search_artists(name, limit=1),
        {"q": name},
        cacheable=True,
    )


def audio_features(track_ids: list[str]) -> Operation:
    ids = list(track_ids)
    return Operation("audio_features", lambda session: session.get_audio_features(ids), {"ids": ids}, cacheable=True)


def my_playlists(limit: int, offset: int = 0) -> Operation:
    return Operation(
        "my_playlists",
        lambda session: session.get_my_playlists(limit, offset),
        {"limit": limit, "offset": offset},
    )


def get_playlist(playlist_id: str) -> Operation:
    return Operation("playlist", lambda session: session.get_playlist(playlist_id), {"playlist_id": playlist_id})


def playlist_tracks(playlist_id: str, limit: int, offset: int = 0) -> Operation:
    return Operation(
        "playlist_tracks",
        lambda session: session.get_playlist_tracks(playlist_id, limit, offset),
        {"playlist_id": playlist_id, "limit": limit, "offset": offset},
    )


def create_playlist(name: str, description: str, public: bool = False, collaborative: bool = False) -> Operation:
    return Operation(
        "create_playlist",
        lambda session: session.create_playlist(name, description, public, collaborative),
        {"name": name, "public": public, "collaborative": collaborative},
    )


def add_tracks(playlist_id: str, uris: list[str]) -> Operation:
    batch = list(uris)
    return Operation(
        "add_tracks",
        lambda session: session.add_tracks_to_playlist(playlist_id, batch),
        {"playlist_id": playlist_id, "count": len(batch)},
    )


def recommendations(params: dict[str, Any]) -> Operation:
    query = dict(params)
    return Operation("recommendations", lambda session: session.get_recommendations(query), query)
