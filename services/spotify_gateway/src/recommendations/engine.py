"""
Recommendation playlists seeded from a user's listening.

The engine gathers candidate tracks from the selected listings, samples
track seeds, optionally bounds the request by the candidates' audio-feature
envelope and explicit targets, asks Spotify for recommendations and stores
them in a new private playlist.
"""

import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

import structlog

from services.spotify_gateway.src.aggregation.audio_features import AudioFeatureFetcher
from services.spotify_gateway.src.aggregation.paginator import page_items
from services.spotify_gateway.src.aggregation.sources import TrackSource, track_id, track_uri
from services.spotify_gateway.src.aggregation.tracks import TrackLister
from services.spotify_gateway.src.config import GatewayConfig
from services.spotify_gateway.src.exceptions import (
    ErrorResult,
    UpstreamCallFailedError,
    no_options_selected,
    no_songs_found,
)
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.models.library import AUDIO_FEATURE_KEYS
from services.spotify_gateway.src.playlists.materializer import PlaylistMaterializer
from services.spotify_gateway.src.spotify import operations as ops

logger = structlog.get_logger(__name__)

PLAYLIST_NAME = "Recommendations"
TRACK_SEED_COUNT = 3


@dataclass
class RecommendationOptions:
    """Which listings and constraints drive a recommendation playlist."""

    recently_played: bool = False
    most_played: bool = False
    liked_tracks: bool = False
    currently_playing: bool = False
    genre: str | None = None
    use_audio_features: bool = False
    use_track_seeds: bool = True
    use_top_genres: bool = False
    target_values: dict[str, float | None] = field(default_factory=dict)
    amount: int = 50

    @property
    def has_selection(self) -> bool:
        return any(
            (self.recently_played, self.most_played, self.liked_tracks, self.currently_playing, self.genre)
        )

    def describe(self) -> list[str]:
        """Human-readable names of the options that shaped the playlist."""
        parts = [
            name.replace("_", " ")
            for name in (
                "recently_played",
                "most_played",
                "liked_tracks",
                "currently_playing",
                "use_audio_features",
                "use_top_genres",
            )
            if getattr(self, name)
        ]
        if self.genre:
            parts.append(f"genre {self.genre}")
        if target_parameters(self.target_values):
            parts.append("target values")
        return parts


def feature_envelope(features: list[dict[str, Any]]) -> dict[str, float]:
    """Compute ``min_*``/``max_*`` bounds for each audio feature.

    Features missing from every candidate are left out.
    """
    params: dict[str, float] = {}
    for key in AUDIO_FEATURE_KEYS:
        values = [
            feature[key]
            for feature in features
            if isinstance(feature.get(key), (int, float)) and not isinstance(feature.get(key), bool)
        ]
        if values:
            params[f"min_{key}"] = min(values)
            params[f"max_{key}"] = max(values)
    return params


def target_parameters(targets: dict[str, Any]) -> dict[str, Any]:
    """Turn non-empty target values into ``target_*`` request parameters."""
    return {f"target_{key}": value for key, value in targets.items() if value is not None and value != ""}


class RecommendationEngine:
    """Builds recommendation playlists."""

    def __init__(
        self,
        gateway: CallGateway,
        tracks: TrackLister,
        audio_features: AudioFeatureFetcher,
        materializer: PlaylistMaterializer,
        config: GatewayConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.tracks = tracks
        self.audio_features = audio_features
        self.materializer = materializer
        self.config = config or GatewayConfig()
        self.rng = rng or random.Random()

    async def build(self, user_id: str, options: RecommendationOptions) -> dict[str, Any] | ErrorResult:
        """Build a recommendation playlist.

        Args:
            user_id: External user id
            options: Listings and constraints to use

        Returns:
            The hydrated playlist, or an ``ErrorResult`` when no option was
            selected or no candidate tracks were found
        """
        if not options.has_selection:
            return no_options_selected()

        candidates, forced_seed = await self._collect_candidates(user_id, options)
        if not candidates:
            logger.info("No candidate tracks for recommendations", user_id=user_id)
            return no_songs_found()

        genres: list[str] = []
        if options.genre:
            genres = [options.genre]
        elif options.use_top_genres:
            genres = await self.top_genres(user_id, self.config.fallback_genre_count)

        params: dict[str, Any] = {"limit": max(1, min(options.amount, self.config.recommendation_limit))}
        if genres:
            params["seed_genres"] = ",".join(genres)
        if options.use_track_seeds or not genres:
            params["seed_tracks"] = ",".join(self.select_seeds(candidates, forced_seed))
        if options.use_audio_features:
            features = await self.audio_features.fetch(user_id, candidates)
            params.update(feature_envelope(features))
        params.update(target_parameters(options.target_values))

        response = await self.gateway.invoke(user_id, ops.recommendations(params))
        uris = [track_uri(track) for track in (response or {}).get("tracks") or [] if track_id(track)]
        if not uris:
            logger.info("Spotify returned no recommendations", user_id=user_id)
            return no_songs_found()

        description = f"This playlist is generated based on: {', '.join(options.describe())}."
        playlist = await self.gateway.invoke(
            user_id,
            ops.create_playlist(PLAYLIST_NAME, description, public=False, collaborative=False),
        )
        logger.info(
            "Created recommendation playlist",
            user_id=user_id,
            playlist_id=playlist["id"],
            candidates=len(candidates),
            tracks=len(uris),
        )
        return await self.materializer.attach_and_fetch(uris, playlist["id"], user_id)

    def select_seeds(self, candidates: list[str], forced_seed: str | None = None) -> list[str]:
        """Sample track seeds uniformly without replacement.

        The currently playing track, when given, always takes one seed slot.
        """
        if forced_seed is None:
            return self.rng.sample(candidates, min(TRACK_SEED_COUNT, len(candidates)))

        pool = [candidate for candidate in candidates if candidate != forced_seed]
        return [forced_seed, *self.rng.sample(pool, min(TRACK_SEED_COUNT - 1, len(pool)))]

    async def top_genres(self, user_id: str, count: int) -> list[str]:
        """Rank the genres of the user's top artists by frequency."""
        response = await self.gateway.invoke(user_id, ops.top_artists(self.config.page_size))
        counts = Counter(
            genre
            for artist in page_items(response) or []
            if isinstance(artist, dict)
            for genre in artist.get("genres") or []
        )
        return [genre for genre, _ in counts.most_common(count)]

    async def _collect_candidates(
        self,
        user_id: str,
        options: RecommendationOptions,
    ) -> tuple[list[str], str | None]:
        candidates: list[str] = []
        selected = (
            (TrackSource.RECENTLY_PLAYED, options.recently_played),
            (TrackSource.MOST_PLAYED, options.most_played),
            (TrackSource.LIKED_TRACKS, options.liked_tracks),
        )
        for source, enabled in selected:
            if not enabled:
                continue
            try:
                tracks = await self.tracks.get_tracks(
                    user_id,
                    source,
                    self.config.page_size,
                    genre=options.genre,
                    randomize=True,
                )
            except UpstreamCallFailedError as e:
                logger.warning(
                    "Skipping candidate source after upstream failure",
                    user_id=user_id,
                    source=source.value,
                    error=e.message,
                )
                continue
            candidates.extend(tid for tid in (track_id(track) for track in tracks) if tid)

        forced_seed = None
        if options.currently_playing:
            try:
                playing = await self.gateway.invoke(user_id, ops.currently_playing())
            except UpstreamCallFailedError as e:
                logger.warning("Skipping currently playing track", user_id=user_id, error=e.message)
            else:
                forced_seed = track_id((playing or {}).get("item"))
                if forced_seed:
                    candidates.append(forced_seed)

        return list(dict.fromkeys(candidates)), forced_seed
