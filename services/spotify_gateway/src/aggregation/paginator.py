"""Generic page-until-condition aggregation over offset-paged upstream listings.

Each use site supplies a ``PaginationPolicy``: the page size and start
offset, a stop predicate evaluated on every fetched page before any of its
items are kept, an item-level inclusion predicate, an optional async page
selector for filters that need I/O, and an ``enough`` predicate over the
items collected so far.

A page that is empty, is not a mapping, or has no ``items`` list ends the
scan. A page without an integer ``total`` is treated as the last page.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from services.spotify_gateway.src.utils import chunked

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PageFetcher = Callable[[int, int], Awaitable[Any]]
StopPredicate = Callable[[list[Any], list[Any]], bool]
IncludePredicate = Callable[[Any], bool]
PageSelector = Callable[[list[Any]], Awaitable[list[Any]]]
EnoughPredicate = Callable[[list[Any]], bool]


@dataclass
class PaginationPolicy:
    """How a paginated scan advances, filters and terminates."""

    page_size: int
    start_offset: int = 0
    stop: StopPredicate | None = None
    include: IncludePredicate | None = None
    select: PageSelector | None = None
    enough: EnoughPredicate | None = None


def page_items(page: Any) -> list[Any] | None:
    """Get the items of a page, or None when the page is malformed."""
    if not isinstance(page, dict):
        return None
    items = page.get("items")
    if not isinstance(items, list):
        return None
    return items


class PaginatedAggregator:
    """Fetches pages until the policy stops the scan or the listing is exhausted."""

    def __init__(self, fetch_page: PageFetcher, policy: PaginationPolicy, name: str = "listing") -> None:
        """Initialize the aggregator.

        Args:
            fetch_page: Coroutine function taking ``(limit, offset)``
            policy: Scan policy
            name: Listing name used in log events
        """
        if policy.page_size <= 0:
            raise ValueError("Page size must be positive")
        self.fetch_page = fetch_page
        self.policy = policy
        self.name = name
        self.pages_fetched = 0

    async def collect(self) -> list[Any]:
        """Run the scan and return the selected items in listing order."""
        policy = self.policy
        offset = max(policy.start_offset, 0)
        collected: list[Any] = []

        while True:
            page = await self.fetch_page(policy.page_size, offset)
            self.pages_fetched += 1

            items = page_items(page)
            if not items:
                break
            if policy.stop is not None and policy.stop(items, collected):
                break

            selected = [item for item in items if policy.include(item)] if policy.include else list(items)
            if policy.select is not None and selected:
                selected = await policy.select(selected)
            collected.extend(selected)

            if policy.enough is not None and policy.enough(collected):
                break

            offset += policy.page_size
            total = page.get("total")
            if not isinstance(total, int) or offset >= total:
                break

        logger.debug(
            "Pagination finished",
            listing=self.name,
            pages=self.pages_fetched,
            collected=len(collected),
        )
        return collected


async def gather_batches(
    items: Sequence[T],
    batch_size: int,
    fetch_batch: Callable[[list[T]], Awaitable[list[R]]],
) -> list[R]:
    """Fetch independent fixed-size batches concurrently and concatenate the results.

    Args:
        items: Inputs to cover, e.g. track ids
        batch_size: Maximum inputs per upstream call
        fetch_batch: Coroutine function resolving one batch

    Returns:
        Results of every batch, in input order
    """
    batches = list(chunked(items, batch_size))
    if not batches:
        return []
    results = await asyncio.gather(*(fetch_batch(batch) for batch in batches))
    return [result for batch_result in results for result in batch_result]
