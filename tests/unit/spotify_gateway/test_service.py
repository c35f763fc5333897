"""Unit tests for the gateway service's domain operations."""

import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from services.spotify_gateway.src.config import Config, GatewayConfig
from services.spotify_gateway.src.exceptions import ErrorResult, InvalidRequestError
from services.spotify_gateway.src.recommendations.engine import RecommendationOptions
from services.spotify_gateway.src.service import SpotifyGatewayService, derive_api_token
from tests.unit.spotify_gateway.fakes import USER_ID, make_track, paged, saved_item


@pytest.fixture
def service(gateway, credentials, refresher):
    config = Config(gateway=GatewayConfig(request_delay=0, page_size=2))
    return SpotifyGatewayService(gateway, credentials, refresher, config=config)


def echo_playlist(name, description, public, collaborative):
    return {"id": "pl-new", "name": name, "public": public}


class TestAuthorization:
    """Test authorization and API tokens."""

    def test_authorize_url_carries_user(self, service):
        assert service.authorize_url("ext-9").endswith("state=ext-9")

    @pytest.mark.asyncio
    async def test_grant_stores_credential_and_issues_token(self, service, credentials):
        """Test the code grant stores tokens and derives the API token."""
        result = await service.grant_authorization_code("code-1", "ext-9")

        expected = derive_api_token("ext-9", "access-code-1")
        assert result == {"api_token": expected, "external_user_id": "ext-9"}
        stored = credentials.rows["ext-9"]
        assert (stored.access_token, stored.refresh_token, stored.api_token) == (
            "access-code-1",
            "refresh-code-1",
            expected,
        )

    @pytest.mark.asyncio
    async def test_api_token_survives_refresh(self, service, credentials, refresher, spotify):
        """Test a token refresh leaves the issued API token unchanged."""
        result = await service.grant_authorization_code("code-1", "ext-9")
        credentials.rows["ext-9"] = dataclasses.replace(
            credentials.rows["ext-9"],
            issued_at=datetime.now(UTC) - timedelta(hours=2),
        )
        spotify.respond("get_me", {"id": "me"})

        await service.get_profile("ext-9")

        assert refresher.calls == ["refresh-code-1"]
        assert credentials.rows["ext-9"].access_token == "access-1"
        assert await service.verify_api_token("ext-9", result["api_token"])

    def test_derived_token_is_deterministic(self):
        assert derive_api_token("u", "a") == derive_api_token("u", "a")
        assert derive_api_token("u", "a") != derive_api_token("u", "b")
        assert len(derive_api_token("u", "a")) == 64

    @pytest.mark.asyncio
    async def test_verify_api_token(self, service):
        assert await service.verify_api_token(USER_ID, "api-token")
        assert not await service.verify_api_token(USER_ID, "wrong")
        assert not await service.verify_api_token("stranger", "api-token")

    @pytest.mark.asyncio
    async def test_delete_user(self, service, credentials):
        assert await service.delete_user(USER_ID)
        assert USER_ID not in credentials.rows
        assert not await service.delete_user(USER_ID)


class TestReads:
    """Test read operations routed through the gateway."""

    @pytest.mark.asyncio
    async def test_playlist_audio_features(self, service, spotify):
        """Test every playlist page is read before fetching features."""
        items = [{"track": make_track(f"t{i}")} for i in range(3)] + [{"track": None}]
        spotify.respond("get_playlist_tracks", lambda pid, limit, offset: paged(items, limit, offset))
        spotify.respond("get_audio_features", lambda ids: {"audio_features": [{"id": i} for i in ids]})

        features = await service.get_playlist_audio_features(USER_ID, "pl-1")

        assert [feature["id"] for feature in features] == ["t0", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_find_playlist_stops_at_match(self, service, spotify):
        playlists = [{"id": f"p{i}", "name": f"List {i}"} for i in range(10)]
        spotify.respond("get_my_playlists", lambda limit, offset: paged(playlists, limit, offset))

        found = await service.find_playlist(USER_ID, "List 3")

        assert found == {"id": "p3", "name": "List 3"}
        assert len(spotify.calls_to("get_my_playlists")) == 2

    @pytest.mark.asyncio
    async def test_find_playlist_missing(self, service, spotify):
        spotify.respond("get_my_playlists", {"items": [], "total": 0})

        assert await service.find_playlist(USER_ID, "Nope") is None

    @pytest.mark.asyncio
    async def test_recommendation_guard(self, service, spotify):
        result = await service.create_recommendation_playlist(USER_ID, RecommendationOptions())

        assert result == ErrorResult("No options selected.")
        assert spotify.calls == []


class TestMonthlyPlaylist:
    """Test the liked-tracks-from-month playlist."""

    @pytest.mark.asyncio
    async def test_creates_private_playlist(self, service, spotify):
        saved = [
            saved_item("t1", "2024-04-02T00:00:00Z"),
            saved_item("t2", "2024-03-15T00:00:00Z"),
            saved_item("t3", "2024-03-01T00:00:00Z"),
            saved_item("t4", "2024-02-20T00:00:00Z"),
        ]
        spotify.respond("get_saved_tracks", lambda limit, offset: paged(saved, limit, offset))
        spotify.respond("create_playlist", echo_playlist)
        spotify.respond("add_tracks_to_playlist", {"snapshot_id": "s"})
        spotify.respond("get_playlist", {"id": "pl-new", "name": "Liked Tracks from Mar 2024"})

        result = await service.create_playlist_for_month(USER_ID, 3, 2024)

        assert result == {"id": "pl-new", "name": "Liked Tracks from Mar 2024"}
        (create,) = spotify.calls_to("create_playlist")
        assert create.args[0] == "Liked Tracks from Mar 2024"
        assert create.args[2] is False
        (add,) = spotify.calls_to("add_tracks_to_playlist")
        assert add.args == ("pl-new", ["spotify:track:t2", "spotify:track:t3"])

    @pytest.mark.asyncio
    async def test_custom_name(self, service, spotify):
        spotify.respond(
            "get_saved_tracks",
            lambda limit, offset: paged([saved_item("t1", "2024-03-15T00:00:00Z")], limit, offset),
        )
        spotify.respond("create_playlist", echo_playlist)
        spotify.respond("add_tracks_to_playlist", {})
        spotify.respond("get_playlist", {"id": "pl-new"})

        await service.create_playlist_for_month(USER_ID, 3, 2024, playlist_name="March")

        assert spotify.calls_to("create_playlist")[0].args[0] == "March"

    @pytest.mark.asyncio
    async def test_empty_month(self, service, spotify):
        spotify.respond("get_saved_tracks", {"items": [], "total": 0})

        result = await service.create_playlist_for_month(USER_ID, 3, 2024)

        assert result == ErrorResult("No liked tracks found for 3/2024.")
        assert spotify.calls_to("create_playlist") == []


class TestFilteredPlaylist:
    """Test the artist-filtered playlist."""

    @pytest.mark.asyncio
    async def test_creates_public_playlist_for_artists(self, service, spotify):
        spotify.respond(
            "search_artists",
            lambda query, limit: {"artists": {"items": [{"id": f"id-{query}", "name": query}]}},
        )
        spotify.respond("get_my_playlists", {"items": [], "total": 0})
        spotify.respond("create_playlist", echo_playlist)

        selection = await service.create_filtered_playlist(USER_ID, ["artist:Radiohead", "artist: Portishead"])

        assert selection.created
        assert selection.artist_ids == ["id-Radiohead", "id-Portishead"]
        assert selection.playlist == {"id": "pl-new", "name": "Liked Tracks - Radiohead, Portishead", "public": True}

    @pytest.mark.asyncio
    async def test_reuses_existing_playlist(self, service, spotify):
        spotify.respond("search_artists", lambda query, limit: {"artists": {"items": [{"id": "a1"}]}})
        spotify.respond("get_my_playlists", {"items": [{"id": "old", "name": "Mine"}], "total": 1})

        selection = await service.create_filtered_playlist(USER_ID, ["artist:Radiohead"], playlist_name="Mine")

        assert not selection.created
        assert selection.playlist_id == "old"
        assert spotify.calls_to("create_playlist") == []

    @pytest.mark.asyncio
    async def test_requires_artist_filter(self, service):
        with pytest.raises(InvalidRequestError):
            await service.create_filtered_playlist(USER_ID, ["genre:rock"])

    @pytest.mark.asyncio
    async def test_populate_adds_new_tracks_by_artist(self, service, spotify):
        """Test population stops at the first track already on the playlist."""
        saved = [
            saved_item("t1", "2024-03-05T00:00:00Z", "a1"),
            saved_item("t2", "2024-03-04T00:00:00Z", "a2"),
            saved_item("t3", "2024-03-03T00:00:00Z", "a1"),
            saved_item("t4", "2024-03-02T00:00:00Z", "a1"),
            saved_item("t5", "2024-03-01T00:00:00Z", "a1"),
        ]
        spotify.respond("get_playlist_tracks", lambda pid, limit, offset: {"items": [{"track": make_track("t3")}]})
        spotify.respond("get_saved_tracks", lambda limit, offset: paged(saved, limit, offset))
        spotify.respond("add_tracks_to_playlist", {})
        spotify.respond("get_playlist", {"id": "pl-1"})

        added = await service.populate_filtered_playlist(USER_ID, "pl-1", ["a1"])

        assert added == 1
        (add,) = spotify.calls_to("add_tracks_to_playlist")
        assert add.args == ("pl-1", ["spotify:track:t1"])
        assert len(spotify.calls_to("get_saved_tracks")) == 2

    @pytest.mark.asyncio
    async def test_populate_without_artists_is_noop(self, service, spotify):
        assert await service.populate_filtered_playlist(USER_ID, "pl-1", []) == 0
        assert spotify.calls == []

    @pytest.mark.asyncio
    async def test_background_population_reports_failures(self, service, spotify):
        """Test the background wrapper logs gateway errors instead of raising."""
        await service.populate_filtered_playlist_in_background("stranger", "pl-1", ["a1"])

        assert spotify.calls == []
