"""Persistent store for liked tracks, artists and genres."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, cast

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.spotify_gateway.src.database import DatabaseManager
from services.spotify_gateway.src.exceptions import PersistenceError
from services.spotify_gateway.src.models.library import (
    AUDIO_FEATURE_KEYS,
    Artist,
    ArtistGenre,
    Genre,
    LikedTrack,
    Track,
)
from services.spotify_gateway.src.models.user import User
from services.spotify_gateway.src.utils import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class ArtistRecord:
    """Artist name and genre tags as resolved from Spotify."""

    name: str
    genres: list[str] = field(default_factory=list)


class LibraryRepository:
    """Stores scanned liked-track pages and artist genre lookups."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        """Initialize the repository.

        Args:
            db_manager: Database manager providing sessions
        """
        self.db = db_manager

    async def get_artist_genres(self, artist_ids: Iterable[str]) -> dict[str, list[str]]:
        """Look up stored genres for the given Spotify artist ids.

        Args:
            artist_ids: Spotify artist ids

        Returns:
            Mapping of artist id to genres for every artist that is stored
        """
        ids = list(dict.fromkeys(artist_ids))
        if not ids:
            return {}

        try:
            async with self.db.get_session() as session:
                result = await session.execute(select(Artist).where(Artist.artist_id.in_(ids)))
                artists = list(result.scalars().all())
                return {artist.artist_id: [genre.genre for genre in artist.genres] for artist in artists}
        except SQLAlchemyError as e:
            logger.error(f"Failed to load artist genres: {e}")
            raise PersistenceError("Failed to load artist genres", "get_artist_genres") from e

    async def save_artists(self, artists: Mapping[str, ArtistRecord]) -> None:
        """Store artists and their genres, skipping artists already stored.

        Args:
            artists: Mapping of Spotify artist id to its record
        """
        if not artists:
            return

        try:
            async with self.db.get_session() as session:
                genre_cache: dict[str, Genre] = {}
                for artist_id, record in artists.items():
                    await self._get_or_create_artist(session, artist_id, record, genre_cache)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store artists: {e}")
            raise PersistenceError("Failed to store artists", "save_artists") from e

    async def get_liked_tracks(
        self,
        external_id: str,
        month: int,
        year: int,
        genre: str | None = None,
    ) -> list[dict[str, Any]]:
        """Load stored liked tracks for a user and month.

        Args:
            external_id: Caller-supplied user id
            month: Month number, 1-12
            year: Four digit year
            genre: Optional genre the track's artist must carry

        Returns:
            Saved-track items shaped like Spotify's ``/me/tracks`` items,
            most recent first
        """
        try:
            async with self.db.get_session() as session:
                stmt = (
                    select(LikedTrack)
                    .join(User, LikedTrack.user_id == User.id)
                    .where(User.user_id == external_id, LikedTrack.month == month, LikedTrack.year == year)
                    .order_by(LikedTrack.added_at.desc())
                )
                if genre:
                    stmt = (
                        stmt.join(Track, LikedTrack.track_id == Track.id)
                        .join(ArtistGenre, ArtistGenre.artist_id == Track.artist_id)
                        .join(Genre, Genre.id == ArtistGenre.genre_id)
                        .where(Genre.genre == genre)
                    )
                result = await session.execute(stmt)
                liked = list(result.unique().scalars().all())
                return [self._to_item(row) for row in liked]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load liked tracks for {external_id}: {e}")
            raise PersistenceError(f"Failed to load liked tracks for {external_id}", "get_liked_tracks") from e

    async def delete_liked_tracks(self, external_id: str, track_ids: Iterable[str]) -> int:
        """Remove liked-track rows for tracks the user no longer has saved.

        Returns:
            Number of rows deleted
        """
        ids = list(track_ids)
        if not ids:
            return 0

        try:
            async with self.db.get_session() as session:
                user_pk = await self._user_pk(session, external_id)
                if user_pk is None:
                    return 0
                track_pks = select(Track.id).where(Track.track_id.in_(ids))
                stmt = delete(LikedTrack).where(LikedTrack.user_id == user_pk, LikedTrack.track_id.in_(track_pks))
                result = await session.execute(stmt)
                deleted = cast("int", result.rowcount)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete liked tracks for {external_id}: {e}")
            raise PersistenceError(f"Failed to delete liked tracks for {external_id}", "delete_liked_tracks") from e

        logger.info(f"Removed {deleted} unliked tracks for {external_id}")
        return deleted

    async def save_liked_tracks(
        self,
        external_id: str,
        items: list[dict[str, Any]],
        artists: Mapping[str, ArtistRecord],
        audio_features: Mapping[str, dict[str, Any]],
    ) -> int:
        """Store the saved tracks of a fully scanned month.

        Args:
            external_id: Caller-supplied user id
            items: Saved-track items from ``/me/tracks``
            artists: Resolved artist records keyed by artist id
            audio_features: Audio features keyed by track id

        Returns:
            Number of new liked-track rows
        """
        try:
            async with self.db.get_session() as session:
                user_pk = await self._user_pk(session, external_id)
                if user_pk is None:
                    return 0

                genre_cache: dict[str, Genre] = {}
                created = 0
                for item in items:
                    track_data = item.get("track") or {}
                    track_artists = track_data.get("artists") or []
                    if not track_data.get("id") or not track_artists:
                        continue

                    artist_data = track_artists[0]
                    record = artists.get(artist_data["id"]) or ArtistRecord(name=artist_data.get("name", ""))
                    artist = await self._get_or_create_artist(session, artist_data["id"], record, genre_cache)
                    primary_genre = (
                        await self._get_or_create_genre(session, record.genres[0], genre_cache)
                        if record.genres
                        else None
                    )
                    track = await self._get_or_create_track(
                        session,
                        track_data,
                        artist,
                        primary_genre,
                        audio_features.get(track_data["id"]) or {},
                    )

                    existing = await session.execute(
                        select(LikedTrack.id).where(LikedTrack.user_id == user_pk, LikedTrack.track_id == track.id)
                    )
                    if existing.scalar_one_or_none() is not None:
                        continue

                    added_at = parse_timestamp(item["added_at"])
                    session.add(
                        LikedTrack(
                            user_id=user_pk,
                            track_id=track.id,
                            added_at=added_at,
                            year=added_at.year,
                            month=added_at.month,
                        )
                    )
                    created += 1

                await session.flush()
                return created
        except SQLAlchemyError as e:
            logger.error(f"Failed to store liked tracks for {external_id}: {e}")
            raise PersistenceError(f"Failed to store liked tracks for {external_id}", "save_liked_tracks") from e

    async def _user_pk(self, session: AsyncSession, external_id: str) -> int | None:
        result = await session.execute(select(User.id).where(User.user_id == external_id))
        return cast("int | None", result.scalar_one_or_none())

    async def _get_or_create_genre(self, session: AsyncSession, name: str, cache: dict[str, Genre]) -> Genre:
        if name in cache:
            return cache[name]
        result = await session.execute(select(Genre).where(Genre.genre == name))
        genre = result.scalar_one_or_none()
        if genre is None:
            genre = Genre(genre=name)
            session.add(genre)
            await session.flush()
        cache[name] = genre
        return cast("Genre", genre)

    async def _get_or_create_artist(
        self,
        session: AsyncSession,
        artist_id: str,
        record: ArtistRecord,
        genre_cache: dict[str, Genre],
    ) -> Artist:
        result = await session.execute(select(Artist).where(Artist.artist_id == artist_id))
        artist = result.scalar_one_or_none()
        if artist is not None:
            return cast("Artist", artist)

        artist = Artist(artist_id=artist_id, name=record.name)
        session.add(artist)
        await session.flush()
        for name in dict.fromkeys(record.genres):
            genre = await self._get_or_create_genre(session, name, genre_cache)
            session.add(ArtistGenre(artist_id=artist.id, genre_id=genre.id))
        await session.flush()
        return artist

    async def _get_or_create_track(
        self,
        session: AsyncSession,
        track_data: dict[str, Any],
        artist: Artist,
        genre: Genre | None,
        features: dict[str, Any],
    ) -> Track:
        result = await session.execute(select(Track).where(Track.track_id == track_data["id"]))
        track = result.scalar_one_or_none()
        if track is not None:
            return cast("Track", track)

        track = Track(
            track_id=track_data["id"],
            name=track_data.get("name", ""),
            artist_id=artist.id,
            genre_id=genre.id if genre else None,
            **{key: features.get(key) for key in AUDIO_FEATURE_KEYS},
        )
        session.add(track)
        await session.flush()
        return track

    @staticmethod
    def _to_item(liked: LikedTrack) -> dict[str, Any]:
        track = liked.track
        return {
            "added_at": liked.added_at.isoformat().replace("+00:00", "Z"),
            "track": {
                "id": track.track_id,
                "name": track.name,
                "uri": f"spotify:track:{track.track_id}",
                "artists": [{"id": track.artist.artist_id, "name": track.artist.name}],
            },
        }
