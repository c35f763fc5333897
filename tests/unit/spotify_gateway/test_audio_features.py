"""Unit tests for batched audio-feature fetching."""

import pytest

from services.spotify_gateway.src.aggregation.audio_features import AudioFeatureFetcher
from tests.unit.spotify_gateway.fakes import USER_ID


def features_endpoint(ids):
    # Spotify answers null for tracks it has no analysis for
    return {"audio_features": [None if track_id.endswith("x") else {"id": track_id, "energy": 0.5} for track_id in ids]}


class TestAudioFeatureFetcher:
    """Test exhaustive audio-feature fetching."""

    @pytest.mark.asyncio
    async def test_covers_every_id_in_batches(self, gateway, spotify):
        """Test 230 ids are fetched in three batches and returned in order."""
        spotify.respond("get_audio_features", features_endpoint)
        track_ids = [f"t{i}" for i in range(230)]

        features = await AudioFeatureFetcher(gateway, batch_size=100).fetch(USER_ID, track_ids)

        assert [feature["id"] for feature in features] == track_ids
        assert sorted(len(call.args[0]) for call in spotify.calls_to("get_audio_features")) == [30, 100, 100]

    @pytest.mark.asyncio
    async def test_missing_features_dropped(self, gateway, spotify):
        spotify.respond("get_audio_features", features_endpoint)

        features = await AudioFeatureFetcher(gateway).fetch(USER_ID, ["t1", "t2x", "t3"])

        assert [feature["id"] for feature in features] == ["t1", "t3"]

    @pytest.mark.asyncio
    async def test_no_ids_no_calls(self, gateway, spotify):
        assert await AudioFeatureFetcher(gateway).fetch(USER_ID, []) == []
        assert spotify.calls == []

    @pytest.mark.asyncio
    async def test_fetch_by_id(self, gateway, spotify):
        spotify.respond("get_audio_features", features_endpoint)

        by_id = await AudioFeatureFetcher(gateway).fetch_by_id(USER_ID, ["t1", "t2"])

        assert set(by_id) == {"t1", "t2"}
        assert by_id["t1"]["energy"] == 0.5
