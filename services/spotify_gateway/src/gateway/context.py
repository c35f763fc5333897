"""Shared state injected into the call gateway.

``GatewayContext`` holds the upstream call counter and the rate-limit gate.
One context is created per service instance and handed to the gateway at
construction; nothing here is a module-level singleton.
"""

import asyncio
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


class RateLimitGate:
    """Single-flight wait shared by every caller that hits a rate limit.

    The first caller to trip the gate schedules one release timer; callers
    that trip or check the gate while it is closed await that same release.
    """

    def __init__(self) -> None:
        self._release: asyncio.Future[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.timers_created = 0

    @property
    def is_limited(self) -> bool:
        return self._release is not None and not self._release.done()

    def trip(self, retry_after: float) -> asyncio.Future[None]:
        """Close the gate for ``retry_after`` seconds unless it is already closed.

        Args:
            retry_after: Seconds advertised by the upstream Retry-After header

        Returns:
            Future resolved when the gate reopens
        """
        if self._release is not None and not self._release.done():
            return self._release

        loop = asyncio.get_running_loop()
        release: asyncio.Future[None] = loop.create_future()
        delay = max(retry_after, 0.0)
        self._release = release
        self._timer = loop.call_later(delay, self._open, release)
        self.timers_created += 1
        logger.warning("Rate limit hit, pausing upstream calls", retry_after=delay)
        return release

    async def wait(self) -> None:
        """Suspend until the gate is open. Returns immediately when not limited."""
        release = self._release
        if release is not None and not release.done():
            await asyncio.shield(release)

    async def trip_and_wait(self, retry_after: float) -> None:
        await asyncio.shield(self.trip(retry_after))

    def cancel(self) -> None:
        """Cancel a pending timer and release all waiters immediately."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._release is not None and not self._release.done():
            self._release.set_result(None)

    def _open(self, release: asyncio.Future[None]) -> None:
        self._timer = None
        if not release.done():
            release.set_result(None)
            logger.info("Rate limit wait elapsed, resuming upstream calls")


@dataclass
class GatewayContext:
    """Process-local state for one gateway instance."""

    rate_limit: RateLimitGate = field(default_factory=RateLimitGate)
    calls: int = 0

    def record_call(self) -> int:
        """Count one successful upstream call and return the new total."""
        self.calls += 1
        return self.calls
