"""Exhaustive audio-feature fetch for arbitrary numbers of tracks."""

from typing import Any

from services.spotify_gateway.src.aggregation.paginator import gather_batches
from services.spotify_gateway.src.gateway.call_gateway import CallGateway
from services.spotify_gateway.src.spotify import operations as ops


class AudioFeatureFetcher:
    """Fetches audio features in fixed-size batches covering every id."""

    def __init__(self, gateway: CallGateway, batch_size: int = 100) -> None:
        self.gateway = gateway
        self.batch_size = batch_size

    async def fetch(self, user_id: str, track_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch audio features for every track id.

        Args:
            user_id: External user id
            track_ids: Spotify track ids, in any number

        Returns:
            Feature objects in input order; tracks Spotify has no
            features for are left out
        """

        async def fetch_batch(batch: list[str]) -> list[dict[str, Any]]:
            response = await self.gateway.invoke(user_id, ops.audio_features(batch))
            features = (response or {}).get("audio_features") or []
            return [feature for feature in features if isinstance(feature, dict)]

        return await gather_batches(track_ids, self.batch_size, fetch_batch)

    async def fetch_by_id(self, user_id: str, track_ids: list[str]) -> dict[str, dict[str, Any]]:
        features = await self.fetch(user_id, track_ids)
        return {feature["id"]: feature for feature in features if feature.get("id")}
