"""Unit tests for cached track listings."""

import random

import pytest

from services.spotify_gateway.src.aggregation.genres import ArtistGenreResolver, GenreTrackFinder
from services.spotify_gateway.src.aggregation.sources import TrackSource, primary_artist_id, track_uri
from services.spotify_gateway.src.aggregation.tracks import TrackLister
from services.spotify_gateway.src.cache.result_cache import MemoryResultCache
from tests.unit.spotify_gateway.fakes import USER_ID, make_track, paged, saved_item


@pytest.fixture
def make_lister(gateway):
    def _make(cache=None, rng=None, max_random_offset=10):
        finder = GenreTrackFinder(gateway, ArtistGenreResolver(gateway), match_threshold=2)
        return TrackLister(gateway, finder, cache, max_random_offset=max_random_offset, rng=rng)

    return _make


class TestTrackSource:
    """Test listing helpers."""

    def test_operation_per_source(self):
        assert TrackSource.MOST_PLAYED.operation(10, 20).name == "top_tracks"
        assert TrackSource.LIKED_TRACKS.operation(10, 20).params == {"limit": 10, "offset": 20}
        assert TrackSource.RECENTLY_PLAYED.operation(10, 20).params == {"limit": 10}

    def test_track_of(self):
        track = make_track("t1")

        assert TrackSource.MOST_PLAYED.track_of(track) is track
        assert TrackSource.RECENTLY_PLAYED.track_of({"track": track}) is track
        assert TrackSource.LIKED_TRACKS.track_of({"track": None}) is None

    def test_track_helpers(self):
        assert primary_artist_id(make_track("t1", "a9")) == "a9"
        assert primary_artist_id({"id": "t1", "artists": []}) is None
        assert track_uri({"id": "t1"}) == "spotify:track:t1"


class TestTrackLister:
    """Test the cached listing."""

    @pytest.mark.asyncio
    async def test_returns_track_objects(self, make_lister, spotify):
        saved = [saved_item(f"t{i}", "2024-01-01T00:00:00Z") for i in range(3)]
        spotify.respond("get_saved_tracks", lambda limit, offset: paged(saved, limit, offset))

        tracks = await make_lister().get_tracks(USER_ID, TrackSource.LIKED_TRACKS, 50)

        assert [track["id"] for track in tracks] == ["t0", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_results_cached_per_arguments(self, make_lister, spotify):
        """Test a repeat request is served from the cache under the listing key."""
        cache = MemoryResultCache()
        top = [make_track(f"t{i}") for i in range(5)]
        spotify.respond("get_top_tracks", lambda limit, offset, time_range: paged(top, limit, offset))
        lister = make_lister(cache=cache)

        first = await lister.get_tracks(USER_ID, TrackSource.MOST_PLAYED, 5)
        second = await lister.get_tracks(USER_ID, TrackSource.MOST_PLAYED, 5)
        await lister.get_tracks(USER_ID, TrackSource.MOST_PLAYED, 5, offset=1)

        assert first == second
        assert len(spotify.calls_to("get_top_tracks")) == 2
        assert await cache.get_json(f"tracks:{USER_ID}:most_played:5:0:any") == first

    @pytest.mark.asyncio
    async def test_randomized_offset_within_bound(self, make_lister, spotify):
        top = [make_track(f"t{i}") for i in range(40)]
        spotify.respond("get_top_tracks", lambda limit, offset, time_range: paged(top, limit, offset))
        lister = make_lister(rng=random.Random(3), max_random_offset=10)

        for _ in range(5):
            await lister.get_tracks(USER_ID, TrackSource.MOST_PLAYED, 5, offset=30, randomize=True)

        offsets = [call.args[1] for call in spotify.calls_to("get_top_tracks")]
        assert all(0 <= offset <= 10 for offset in offsets)

    @pytest.mark.asyncio
    async def test_genre_uses_discovery(self, make_lister, spotify):
        """Test a genre filter pages through the listing for matching artists."""
        top = [make_track("t1", "a-rock"), make_track("t2", "a-pop"), make_track("t3", "a-rock")]
        spotify.respond("get_top_tracks", lambda limit, offset, time_range: paged(top, limit, offset))
        spotify.respond(
            "get_artists",
            {"artists": [{"id": "a-rock", "genres": ["rock"]}, {"id": "a-pop", "genres": ["pop"]}]},
        )

        tracks = await make_lister().get_tracks(USER_ID, TrackSource.MOST_PLAYED, 3, genre="rock")

        assert [track["id"] for track in tracks] == ["t1", "t3"]
