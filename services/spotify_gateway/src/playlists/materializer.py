"""Attaches tracks to a playlist in upstream-sized batches."""

from typing import Any

import structlog

from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.spotify import operations as ops
from services.spotify_gateway.src.utils import chunked

logger = structlog.get_logger(__name__)


class PlaylistMaterializer:
    """Adds track URIs to a playlist and returns the hydrated playlist."""

    def __init__(self, gateway: CallGateway, batch_size: int = 100) -> None:
        self.gateway = gateway
        self.batch_size = batch_size

    async def attach_and_fetch(self, track_uris: list[str], playlist_id: str, user_id: str) -> dict[str, Any]:
        """Add tracks in order, one gateway call per batch, then fetch the playlist.

        A failing batch aborts the run and propagates its error; batches
        added before it stay on the playlist.

        Args:
            track_uris: Spotify track URIs to add
            playlist_id: Target playlist id
            user_id: External user id owning the playlist

        Returns:
            The playlist as returned by Spotify after all additions
        """
        batches = list(chunked(track_uris, self.batch_size))
        for index, batch in enumerate(batches, start=1):
            await self.gateway.invoke(user_id, ops.add_tracks(playlist_id, batch))
            logger.debug(
                "Added playlist batch",
                playlist_id=playlist_id,
                batch=index,
                batches=len(batches),
                size=len(batch),
            )

        playlist = await self.gateway.invoke(user_id, ops.get_playlist(playlist_id))
        logger.info("Materialized playlist", user_id=user_id, playlist_id=playlist_id, tracks=len(track_uris))
        return playlist  # type: ignore[no-any-return]
