"""
Domain operations exposed by the Spotify gateway.

``SpotifyGatewayService`` wires the aggregation, playlist and
recommendation components around one ``CallGateway`` and offers one method
per operation the HTTP layer serves. Every upstream call goes through the
gateway.
"""

import calendar
import hashlib
import hmac
import random
from dataclasses import dataclass
from typing import Any

import structlog

from services.spotify_gateway.src.aggregation.audio_features import AudioFeatureFetcher
from services.spotify_gateway.src.aggregation.genres import ArtistGenreResolver, GenreTrackFinder
from services.spotify_gateway.src.aggregation.liked_tracks import LikedTrackFinder
from services.spotify_gateway.src.aggregation.paginator import PaginatedAggregator, PaginationPolicy, page_items
from services.spotify_gateway.src.aggregation.sources import (
    TrackSource,
    primary_artist_id,
    track_id,
    track_uri,
)
from services.spotify_gateway.src.aggregation.tracks import TrackLister
from services.spotify_gateway.src.cache.result_cache import ResultCache
from services.spotify_gateway.src.config import Config
from services.spotify_gateway.src.exceptions import ErrorResult, InvalidRequestError, SpotifyGatewayError
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.playlists.materializer import PlaylistMaterializer
from services.spotify_gateway.src.recommendations.engine import RecommendationEngine, RecommendationOptions
from services.spotify_gateway.src.repositories.credentials import CredentialStore
from services.spotify_gateway.src.repositories.library import LibraryRepository
from services.spotify_gateway.src.spotify import operations as ops
from services.spotify_gateway.src.spotify.auth import TokenRefresher

logger = structlog.get_logger(__name__)

ARTIST_FILTER_PREFIX = "artist:"
PLAYLIST_TRACKS_PAGE_SIZE = 100


def derive_api_token(external_id: str, access_token: str) -> str:
    """Derive the caller-facing API token issued at authorization time."""
    return hashlib.sha256(f"{external_id}{access_token}".encode()).hexdigest()


@dataclass
class FilteredPlaylist:
    """A playlist selected for artist filtering and the artists to fill it with."""

    playlist: dict[str, Any]
    artist_ids: list[str]
    created: bool

    @property
    def playlist_id(self) -> str:
        return str(self.playlist["id"])


class SpotifyGatewayService:
    """Domain operations on behalf of externally identified users."""

    def __init__(
        self,
        gateway: CallGateway,
        credentials: CredentialStore,
        refresher: TokenRefresher,
        cache: ResultCache | None = None,
        library: LibraryRepository | None = None,
        config: Config | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the service and its components.

        Args:
            gateway: Call gateway every upstream call goes through
            credentials: Credential store
            refresher: OAuth exchanges for authorization-code grants
            cache: Optional result cache for derived lookups
            library: Optional liked-track and artist store
            config: Service configuration
            rng: Random source for offsets and seed sampling
        """
        self.config = config or Config()
        self.gateway = gateway
        self.credentials = credentials
        self.refresher = refresher
        self.cache = cache
        self.library = library

        tuning = self.config.gateway
        ttl = self.config.cache.default_ttl
        rng = rng or random.Random()

        self.audio_features = AudioFeatureFetcher(gateway, tuning.audio_feature_batch_size)
        self.genres = ArtistGenreResolver(gateway, cache, library, tuning.artist_batch_size, ttl)
        self.genre_finder = GenreTrackFinder(gateway, self.genres, tuning.genre_match_threshold)
        self.tracks = TrackLister(gateway, self.genre_finder, cache, tuning.max_random_offset, ttl, rng)
        self.liked = LikedTrackFinder(
            gateway,
            self.genres,
            self.audio_features,
            library,
            tuning.page_size,
            tuning.saved_check_batch_size,
        )
        self.materializer = PlaylistMaterializer(gateway, tuning.playlist_batch_size)
        self.recommendations = RecommendationEngine(
            gateway,
            self.tracks,
            self.audio_features,
            self.materializer,
            tuning,
            rng,
        )

    # Authorization

    def authorize_url(self, external_id: str) -> str:
        return self.refresher.authorize_url(state=external_id)

    async def grant_authorization_code(self, code: str, external_id: str) -> dict[str, str]:
        """Exchange an authorization code and store the user's credential.

        The API token is derived from the external id and the access token
        issued by this grant. Token refreshes never change it.

        Returns:
            ``{"api_token", "external_user_id"}``

        Raises:
            AuthExchangeError: If Spotify rejects the code
        """
        pair = await self.refresher.exchange_code(code)
        api_token = derive_api_token(external_id, pair.access_token)
        await self.credentials.upsert(
            external_id,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            api_token=api_token,
        )
        logger.info("User authorized", user_id=external_id)
        return {"api_token": api_token, "external_user_id": external_id}

    async def verify_api_token(self, external_id: str, api_token: str) -> bool:
        credential = await self.credentials.get(external_id)
        if credential is None or not credential.api_token:
            return False
        return hmac.compare_digest(credential.api_token, api_token)

    async def delete_user(self, external_id: str) -> bool:
        deleted = await self.credentials.delete(external_id)
        logger.info("User deleted", user_id=external_id, existed=deleted)
        return deleted

    # Reads

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        return await self.gateway.invoke(user_id, ops.get_profile())  # type: ignore[no-any-return]

    async def get_top_tracks(self, user_id: str, limit: int = 20, offset: int = 0) -> Any:
        return await self.gateway.invoke(user_id, ops.top_tracks(limit, offset))

    async def get_top_artists(self, user_id: str, limit: int = 20, offset: int = 0) -> Any:
        return await self.gateway.invoke(user_id, ops.top_artists(limit, offset))

    async def get_recently_played(self, user_id: str, limit: int = 20) -> Any:
        return await self.gateway.invoke(user_id, ops.recently_played(limit))

    async def get_saved_tracks(self, user_id: str, limit: int = 20, offset: int = 0) -> Any:
        return await self.gateway.invoke(user_id, ops.saved_tracks(limit, offset))

    async def get_currently_playing(self, user_id: str) -> Any:
        return await self.gateway.invoke(user_id, ops.currently_playing())

    async def get_playlists(self, user_id: str, limit: int = 20, offset: int = 0) -> Any:
        return await self.gateway.invoke(user_id, ops.my_playlists(limit, offset))

    async def get_audio_features(self, user_id: str, track_ids: list[str]) -> list[dict[str, Any]]:
        return await self.audio_features.fetch(user_id, track_ids)

    async def get_tracks(
        self,
        user_id: str,
        source: TrackSource,
        amount: int,
        offset: int = 0,
        genre: str | None = None,
        randomize: bool = False,
    ) -> list[dict[str, Any]]:
        return await self.tracks.get_tracks(user_id, source, amount, offset, genre, randomize)

    async def get_top_genres(self, user_id: str, count: int = 5) -> list[str]:
        return await self.recommendations.top_genres(user_id, count)

    async def get_playlist_track_ids(self, user_id: str, playlist_id: str) -> list[str]:
        """Page through a playlist and return its track ids in order."""

        async def fetch_page(limit: int, offset: int) -> Any:
            return await self.gateway.invoke(user_id, ops.playlist_tracks(playlist_id, limit, offset))

        policy = PaginationPolicy(
            page_size=PLAYLIST_TRACKS_PAGE_SIZE,
            include=lambda item: track_id((item or {}).get("track")) is not None,
        )
        items = await PaginatedAggregator(fetch_page, policy, name="playlist_tracks").collect()
        return [item["track"]["id"] for item in items]

    async def get_playlist_audio_features(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        track_ids = await self.get_playlist_track_ids(user_id, playlist_id)
        return await self.audio_features.fetch(user_id, track_ids)

    async def find_playlist(self, user_id: str, name: str) -> dict[str, Any] | None:
        """Find one of the user's playlists by exact name."""

        async def fetch_page(limit: int, offset: int) -> Any:
            return await self.gateway.invoke(user_id, ops.my_playlists(limit, offset))

        policy = PaginationPolicy(
            page_size=self.config.gateway.page_size,
            include=lambda playlist: isinstance(playlist, dict) and playlist.get("name") == name,
            enough=lambda found: bool(found),
        )
        found = await PaginatedAggregator(fetch_page, policy, name="playlists").collect()
        return found[0] if found else None

    async def check_tracks_still_liked(self, user_id: str, track_ids: list[str]) -> dict[str, bool]:
        return await self.liked.check_still_liked(user_id, track_ids)

    # Builders

    async def create_playlist_for_month(
        self,
        user_id: str,
        month: int,
        year: int,
        playlist_name: str | None = None,
        genre: str | None = None,
    ) -> dict[str, Any] | ErrorResult:
        """Create a private playlist of the tracks liked during one month.

        Returns:
            The hydrated playlist, or an ``ErrorResult`` when nothing was
            liked that month
        """
        liked = await self.liked.find_liked_from_month(user_id, month, year, genre)
        uris = [track_uri(item["track"]) for item in liked if track_id(item.get("track"))]
        if not uris:
            return ErrorResult(f"No liked tracks found for {month}/{year}.")

        name = playlist_name or f"Liked Tracks from {calendar.month_abbr[month]} {year}"
        description = f"This playlist is generated with your liked songs from {month}/{year}."
        playlist = await self.gateway.invoke(
            user_id,
            ops.create_playlist(name, description, public=False, collaborative=False),
        )
        logger.info("Created monthly playlist", user_id=user_id, month=month, year=year, tracks=len(uris))
        return await self.materializer.attach_and_fetch(uris, playlist["id"], user_id)

    async def create_recommendation_playlist(
        self,
        user_id: str,
        options: RecommendationOptions,
    ) -> dict[str, Any] | ErrorResult:
        return await self.recommendations.build(user_id, options)

    async def create_filtered_playlist(
        self,
        user_id: str,
        filters: list[str],
        playlist_name: str | None = None,
    ) -> FilteredPlaylist:
        """Select or create the playlist for an artist filter.

        Filters take the form ``artist:<name>``. An existing playlist with
        the same name is reused; otherwise a public one is created. Filling
        it is done by ``populate_filtered_playlist``.

        Raises:
            InvalidRequestError: If no artist filter is given
        """
        names = [f[len(ARTIST_FILTER_PREFIX) :].strip() for f in filters if f.startswith(ARTIST_FILTER_PREFIX)]
        names = [name for name in names if name]
        if not names:
            raise InvalidRequestError("At least one 'artist:<name>' filter is required", "filters")

        artist_ids: list[str] = []
        for name in names:
            response = await self.gateway.invoke(user_id, ops.search_artist(name))
            found = page_items((response or {}).get("artists"))
            if found and found[0].get("id"):
                artist_ids.append(found[0]["id"])
            else:
                logger.warning("Artist not found for filter", user_id=user_id, artist=name)

        name = playlist_name or f"Liked Tracks - {', '.join(names)}"
        playlist = await self.find_playlist(user_id, name)
        created = playlist is None
        if playlist is None:
            description = f"This playlist is generated with your liked songs by {', '.join(names)}."
            playlist = await self.gateway.invoke(
                user_id,
                ops.create_playlist(name, description, public=True, collaborative=False),
            )

        return FilteredPlaylist(playlist=playlist, artist_ids=artist_ids, created=created)

    async def populate_filtered_playlist(self, user_id: str, playlist_id: str, artist_ids: list[str]) -> int:
        """Add liked tracks by the given artists that the playlist does not yet hold.

        Saved tracks are paged most recent first until a track already on the
        playlist is reached or the library is exhausted.

        Returns:
            Number of tracks added
        """
        if not artist_ids:
            return 0

        wanted = set(artist_ids)
        existing = set(await self.get_playlist_track_ids(user_id, playlist_id))
        reached_existing = False

        async def fetch_page(limit: int, offset: int) -> Any:
            return await self.gateway.invoke(user_id, ops.saved_tracks(limit, offset))

        def include(item: Any) -> bool:
            nonlocal reached_existing
            if reached_existing:
                return False
            track = (item or {}).get("track")
            tid = track_id(track)
            if tid is None:
                return False
            if tid in existing:
                reached_existing = True
                return False
            return primary_artist_id(track) in wanted

        policy = PaginationPolicy(
            page_size=self.config.gateway.page_size,
            enough=lambda collected: reached_existing,
            include=include,
        )
        items = await PaginatedAggregator(fetch_page, policy, name="saved_tracks").collect()
        uris = list(dict.fromkeys(track_uri(item["track"]) for item in items))

        if uris:
            await self.materializer.attach_and_fetch(uris, playlist_id, user_id)
        logger.info("Populated filtered playlist", user_id=user_id, playlist_id=playlist_id, added=len(uris))
        return len(uris)

    async def populate_filtered_playlist_in_background(
        self,
        user_id: str,
        playlist_id: str,
        artist_ids: list[str],
    ) -> None:
        """Background wrapper that reports a failed population instead of raising into the event loop."""
        try:
            await self.populate_filtered_playlist(user_id, playlist_id, artist_ids)
        except SpotifyGatewayError as e:
            logger.error(
                "Filtered playlist population aborted",
                user_id=user_id,
                playlist_id=playlist_id,
                error_code=e.error_code,
                error=e.message,
                exc_info=True,
            )
