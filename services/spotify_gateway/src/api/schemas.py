"""Pydantic schemas for API requests and responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from services.spotify_gateway.src.recommendations.engine import RecommendationOptions


class RecommendationRequest(BaseModel):
    """Options for a recommendation playlist."""

    recently_played: bool = False
    most_played: bool = False
    liked_tracks: bool = False
    currently_playing: bool = False
    genre: str | None = None
    use_audio_features: bool = False
    use_track_seeds: bool = True
    use_top_genres: bool = False
    target_values: dict[str, float | None] = Field(default_factory=dict)
    amount: int = Field(default=50, ge=1, le=100)

    def to_options(self) -> RecommendationOptions:
        return RecommendationOptions(**self.model_dump())


class MonthlyPlaylistRequest(BaseModel):
    """Liked tracks from one month."""

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2008)
    playlist_name: str | None = None
    genre: str | None = None


class FilteredPlaylistRequest(BaseModel):
    """Liked tracks by selected artists."""

    filters: list[str] = Field(..., min_length=1, description="Filters such as 'artist:Radiohead'")
    playlist_name: str | None = None


class FilteredPlaylistResponse(BaseModel):
    """Playlist chosen for an artist filter; tracks are added in the background."""

    playlist: dict
    created: bool
    artist_ids: list[str]


class AuthorizationResponse(BaseModel):
    """Result of a successful authorization-code grant."""

    api_token: str
    external_user_id: str


class AuthorizeUrlResponse(BaseModel):
    url: str


class ErrorResultResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    timestamp: datetime
    upstream_calls: int
