"""Cached track listings with optional genre filtering."""

import random
from typing import Any

import structlog

from services.spotify_gateway.src.aggregation.genres import GenreTrackFinder
from services.spotify_gateway.src.aggregation.paginator import page_items
from services.spotify_gateway.src.aggregation.sources import TrackSource
from services.spotify_gateway.src.cache.result_cache import ResultCache, build_cache_key
from services.spotify_gateway.src.gateway.call_gateway import CallGateway

logger = structlog.get_logger(__name__)


class TrackLister:
    """Lists tracks from one of a user's listings.

    Results are cached per (user, source, amount, offset, genre) so repeated
    requests within the TTL do not rescan the listing.
    """

    def __init__(
        self,
        gateway: CallGateway,
        genre_finder: GenreTrackFinder,
        cache: ResultCache | None = None,
        max_random_offset: int = 10,
        ttl: int = 3600,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.genre_finder = genre_finder
        self.cache = cache
        self.max_random_offset = max_random_offset
        self.ttl = ttl
        self.rng = rng or random.Random()

    async def get_tracks(
        self,
        user_id: str,
        source: TrackSource,
        amount: int,
        offset: int = 0,
        genre: str | None = None,
        randomize: bool = False,
    ) -> list[dict[str, Any]]:
        """Get track objects from a listing.

        Args:
            user_id: External user id
            source: Listing to draw from
            amount: Page size
            offset: Start offset, ignored when ``randomize`` is set
            genre: Optional genre filter, which keeps paging until enough matches
            randomize: Start at a random offset to vary repeated requests

        Returns:
            Track objects in listing order
        """
        if randomize:
            offset = self.rng.randint(0, self.max_random_offset)

        cache_key = build_cache_key("tracks", user_id, source.value, amount, offset, genre)
        if self.cache is not None:
            cached = await self.cache.get_json(cache_key)
            if cached is not None:
                return cached  # type: ignore[no-any-return]

        if genre:
            items = await self.genre_finder.find(user_id, source, genre, amount, offset)
        else:
            page = await self.gateway.invoke(user_id, source.operation(amount, offset))
            items = page_items(page) or []

        tracks = [track for track in (source.track_of(item) for item in items) if track is not None]

        if self.cache is not None:
            await self.cache.set_json(cache_key, tracks, self.ttl)

        logger.debug(
            "Listed tracks",
            user_id=user_id,
            source=source.value,
            offset=offset,
            genre=genre,
            count=len(tracks),
        )
        return tracks
