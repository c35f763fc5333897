"""Liked tracks saved within one calendar month.

Spotify lists saved tracks most recent first, so the scan stops as soon as
a page starts before the month, or starts after the month once matches
have been collected. When a library store is configured, the tracks of a
fully scanned month that has already ended are persisted, and later lookups
for that month are served from the store after dropping tracks the user has
since unliked.
"""

from datetime import UTC, datetime
from typing import Any

import structlog

from services.spotify_gateway.src.aggregation.audio_features import AudioFeatureFetcher
from services.spotify_gateway.src.aggregation.genres import ArtistGenreResolver
from services.spotify_gateway.src.aggregation.paginator import PaginatedAggregator, PaginationPolicy, gather_batches
from services.spotify_gateway.src.aggregation.sources import primary_artist_id, track_id
from services.spotify_gateway.src.exceptions import InvalidRequestError
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.repositories.library import ArtistRecord, LibraryRepository
from services.spotify_gateway.src.spotify import operations as ops
from services.spotify_gateway.src.utils import parse_timestamp

logger = structlog.get_logger(__name__)


def month_window(month: int, year: int) -> tuple[datetime, datetime]:
    """Get the UTC bounds of a calendar month as ``[start, next_month_start)``.

    Raises:
        InvalidRequestError: If ``month`` is not 1-12
    """
    if not 1 <= month <= 12:
        raise InvalidRequestError(f"Month must be between 1 and 12, got {month}", "month")
    start = datetime(year, month, 1, tzinfo=UTC)
    end = datetime(year + 1, 1, 1, tzinfo=UTC) if month == 12 else datetime(year, month + 1, 1, tzinfo=UTC)
    return start, end


def added_at(item: Any) -> datetime | None:
    if not isinstance(item, dict) or not isinstance(item.get("added_at"), str):
        return None
    try:
        return parse_timestamp(item["added_at"])
    except ValueError:
        return None


class LikedTrackFinder:
    """Finds the tracks a user saved during a given month."""

    def __init__(
        self,
        gateway: CallGateway,
        resolver: ArtistGenreResolver,
        audio_features: AudioFeatureFetcher,
        library: LibraryRepository | None = None,
        page_size: int = 50,
        saved_check_batch_size: int = 50,
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver
        self.audio_features = audio_features
        self.library = library
        self.page_size = page_size
        self.saved_check_batch_size = saved_check_batch_size

    async def find_liked_from_month(
        self,
        user_id: str,
        month: int,
        year: int,
        genre: str | None = None,
    ) -> list[dict[str, Any]]:
        """Get saved-track items added in ``month``/``year``.

        Args:
            user_id: External user id
            month: Month number, 1-12
            year: Four digit year
            genre: Optional genre the primary artist must carry

        Returns:
            Saved-track items, most recent first
        """
        start, end = month_window(month, year)

        if self.library is not None:
            stored = await self.library.get_liked_tracks(user_id, month, year, genre)
            if stored:
                logger.info("Serving liked tracks from library", user_id=user_id, month=month, year=year)
                return await self._drop_unliked(user_id, stored)

        async def fetch_page(limit: int, offset: int) -> Any:
            return await self.gateway.invoke(user_id, ops.saved_tracks(limit, offset))

        def past_month(items: list[Any], collected: list[Any]) -> bool:
            first = added_at(items[0])
            if first is None:
                return False
            return first < start or (bool(collected) and first >= end)

        def in_month(item: Any) -> bool:
            timestamp = added_at(item)
            return timestamp is not None and start <= timestamp < end

        policy = PaginationPolicy(page_size=self.page_size, stop=past_month, include=in_month)
        aggregator = PaginatedAggregator(fetch_page, policy, name="saved_tracks")
        liked = await aggregator.collect()

        # Only a completed scan of a month that has ended may stand in for the month later
        if self.library is not None and liked and end <= datetime.now(UTC):
            await self._store_month(self.library, user_id, liked)

        if genre:
            liked = await self._select_genre(user_id, liked, genre)

        logger.info(
            "Scanned liked tracks",
            user_id=user_id,
            month=month,
            year=year,
            genre=genre,
            found=len(liked),
            pages=aggregator.pages_fetched,
        )
        return liked

    async def check_still_liked(self, user_id: str, track_ids: list[str]) -> dict[str, bool]:
        """Check which tracks are still in the user's saved tracks.

        Returns:
            Mapping of track id to whether it is still saved
        """

        async def fetch_batch(batch: list[str]) -> list[tuple[str, bool]]:
            flags = await self.gateway.invoke(user_id, ops.contains_saved_tracks(batch))
            return list(zip(batch, [bool(flag) for flag in flags or []], strict=False))

        return dict(await gather_batches(track_ids, self.saved_check_batch_size, fetch_batch))

    async def _drop_unliked(self, user_id: str, stored: list[dict[str, Any]]) -> list[dict[str, Any]]:
        ids = [tid for tid in (track_id(item.get("track")) for item in stored) if tid]
        still_liked = await self.check_still_liked(user_id, ids)
        unliked = [tid for tid in ids if not still_liked.get(tid, False)]
        if unliked and self.library is not None:
            await self.library.delete_liked_tracks(user_id, unliked)
        return [item for item in stored if still_liked.get(track_id(item.get("track")) or "", False)]

    async def _select_genre(self, user_id: str, items: list[Any], genre: str) -> list[Any]:
        artist_ids = [primary_artist_id(item.get("track")) for item in items]
        genres = await self.resolver.resolve(user_id, [a for a in artist_ids if a])
        return [
            item
            for item, artist_id in zip(items, artist_ids, strict=True)
            if artist_id and genre in genres.get(artist_id, [])
        ]

    async def _store_month(self, library: LibraryRepository, user_id: str, items: list[dict[str, Any]]) -> None:
        tracks = [item.get("track") or {} for item in items]
        artist_names = {
            artist["id"]: artist.get("name", "")
            for track in tracks
            for artist in (track.get("artists") or [])[:1]
            if isinstance(artist, dict) and artist.get("id")
        }
        genres = await self.resolver.resolve(user_id, artist_names)
        records = {
            artist_id: ArtistRecord(name=name, genres=genres.get(artist_id, []))
            for artist_id, name in artist_names.items()
        }
        features = await self.audio_features.fetch_by_id(
            user_id, [tid for tid in (track_id(track) for track in tracks) if tid]
        )
        stored = await library.save_liked_tracks(user_id, items, records, features)
        logger.debug("Stored liked tracks for month", user_id=user_id, new_rows=stored)
