"""Small helpers shared by the aggregation and persistence layers."""

from collections.abc import Iterator, Sequence
from datetime import UTC, datetime
from typing import TypeVar

T = TypeVar("T")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as returned by Spotify.

    Date-only values and naive timestamps are taken to be UTC.

    Args:
        value: Timestamp such as ``2024-03-15T10:00:00Z`` or ``2024-03-15``

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])
