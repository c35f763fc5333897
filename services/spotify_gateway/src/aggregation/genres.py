"""Artist genre resolution and genre-filtered track discovery."""

import json
from collections.abc import Iterable
from typing import Any

import structlog

from services.spotify_gateway.src.aggregation.paginator import PaginatedAggregator, PaginationPolicy
from services.spotify_gateway.src.aggregation.sources import TrackSource, primary_artist_id
from services.spotify_gateway.src.cache.result_cache import ResultCache, build_cache_key
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.repositories.library import ArtistRecord, LibraryRepository
from services.spotify_gateway.src.spotify import operations as ops
from services.spotify_gateway.src.utils import chunked

logger = structlog.get_logger(__name__)


def artist_genres_key(artist_id: str) -> str:
    return build_cache_key("artist", artist_id, "genres")


class ArtistGenreResolver:
    """Resolves artist genres from the cache, then the library store, then Spotify.

    Genres found in the store or upstream are written back to the cache;
    genres fetched upstream are also written to the store.
    """

    def __init__(
        self,
        gateway: CallGateway,
        cache: ResultCache | None = None,
        library: LibraryRepository | None = None,
        batch_size: int = 50,
        ttl: int = 3600,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.library = library
        self.batch_size = batch_size
        self.ttl = ttl

    async def resolve(self, user_id: str, artist_ids: Iterable[str]) -> dict[str, list[str]]:
        """Resolve genres for every given artist.

        Args:
            user_id: External user id whose credentials pay for upstream lookups
            artist_ids: Spotify artist ids, duplicates allowed

        Returns:
            Mapping of artist id to genre list; artists Spotify does not
            know resolve to an empty list
        """
        ids = [artist_id for artist_id in dict.fromkeys(artist_ids) if artist_id]
        resolved: dict[str, list[str]] = {}
        if not ids:
            return resolved

        if self.cache is not None:
            cached = await self.cache.get_many([artist_genres_key(artist_id) for artist_id in ids])
            for artist_id, value in zip(ids, cached, strict=True):
                if value is not None:
                    resolved[artist_id] = json.loads(value)

        newly_resolved: dict[str, list[str]] = {}

        missing = [artist_id for artist_id in ids if artist_id not in resolved]
        if missing and self.library is not None:
            stored = await self.library.get_artist_genres(missing)
            newly_resolved.update(stored)

        missing = [artist_id for artist_id in missing if artist_id not in newly_resolved]
        if missing:
            fetched = await self._fetch_upstream(user_id, missing)
            if self.library is not None and fetched:
                await self.library.save_artists(fetched)
            for artist_id in missing:
                record = fetched.get(artist_id)
                newly_resolved[artist_id] = record.genres if record else []

        if self.cache is not None:
            for artist_id, genres in newly_resolved.items():
                await self.cache.set_with_ttl(artist_genres_key(artist_id), json.dumps(genres), self.ttl)

        resolved.update(newly_resolved)
        logger.debug(
            "Resolved artist genres",
            requested=len(ids),
            from_store_or_upstream=len(newly_resolved),
        )
        return resolved

    async def _fetch_upstream(self, user_id: str, artist_ids: list[str]) -> dict[str, ArtistRecord]:
        records: dict[str, ArtistRecord] = {}
        for batch in chunked(artist_ids, self.batch_size):
            response = await self.gateway.invoke(user_id, ops.artists(batch))
            for artist in (response or {}).get("artists") or []:
                if isinstance(artist, dict) and artist.get("id"):
                    records[artist["id"]] = ArtistRecord(
                        name=artist.get("name", ""),
                        genres=list(artist.get("genres") or []),
                    )
        return records


class GenreTrackFinder:
    """Pages a track listing until enough tracks by artists of a genre are found."""

    def __init__(
        self,
        gateway: CallGateway,
        resolver: ArtistGenreResolver,
        match_threshold: int = 5,
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver
        self.match_threshold = match_threshold

    async def find(
        self,
        user_id: str,
        source: TrackSource,
        genre: str,
        page_size: int,
        start_offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Collect listing items whose primary artist carries ``genre``.

        Paging stops once ``match_threshold`` matches are collected or the
        listing is exhausted.

        Returns:
            Matching listing items in listing order
        """

        async def fetch_page(limit: int, offset: int) -> Any:
            return await self.gateway.invoke(user_id, source.operation(limit, offset))

        async def select_genre(items: list[Any]) -> list[Any]:
            artist_ids = [primary_artist_id(source.track_of(item)) for item in items]
            genres = await self.resolver.resolve(user_id, [a for a in artist_ids if a])
            return [
                item
                for item, artist_id in zip(items, artist_ids, strict=True)
                if artist_id and genre in genres.get(artist_id, [])
            ]

        policy = PaginationPolicy(
            page_size=page_size,
            start_offset=start_offset,
            include=lambda item: source.track_of(item) is not None,
            select=select_genre,
            enough=lambda collected: len(collected) >= self.match_threshold,
        )
        aggregator = PaginatedAggregator(fetch_page, policy, name=f"{source.value}:{genre}")
        matches = await aggregator.collect()

        logger.info(
            "Genre discovery finished",
            user_id=user_id,
            source=source.value,
            genre=genre,
            matches=len(matches),
            pages=aggregator.pages_fetched,
        )
        return matches
