"""Paginated aggregation built on the call gateway."""

from .audio_features import AudioFeatureFetcher
from .genres import ArtistGenreResolver, GenreTrackFinder
from .liked_tracks import LikedTrackFinder, month_window
from .paginator import PaginatedAggregator, PaginationPolicy, gather_batches
from .sources import TrackSource
from .tracks import TrackLister

__all__ = [
    "ArtistGenreResolver",
    "AudioFeatureFetcher",
    "GenreTrackFinder",
    "LikedTrackFinder",
    "PaginatedAggregator",
    "PaginationPolicy",
    "TrackLister",
    "TrackSource",
    "gather_batches",
    "month_window",
]
