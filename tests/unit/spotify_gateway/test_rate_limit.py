"""Unit tests for the shared rate-limit gate."""

import asyncio

import pytest

from services.spotify_gateway.src.gateway.context import GatewayContext, RateLimitGate
from services.spotify_gateway.src.metrics import GatewayMetrics
from services.spotify_gateway.src.spotify import operations as ops
from tests.unit.spotify_gateway.fakes import USER_ID, api_error

# Tolerance for event loop clock resolution
EPSILON = 0.005


class TestRateLimitGate:
    """Test the gate in isolation."""

    @pytest.mark.asyncio
    async def test_open_gate_does_not_wait(self):
        """Test waiting on an open gate returns immediately."""
        gate = RateLimitGate()

        await asyncio.wait_for(gate.wait(), timeout=0.1)

        assert not gate.is_limited

    @pytest.mark.asyncio
    async def test_repeated_trips_share_one_timer(self):
        """Test tripping a closed gate reuses the pending release."""
        gate = RateLimitGate()

        first = gate.trip(0.05)
        second = gate.trip(5.0)

        assert first is second
        assert gate.timers_created == 1
        assert gate.is_limited
        gate.cancel()

    @pytest.mark.asyncio
    async def test_gate_reopens_after_delay(self):
        """Test waiters resume once the retry-after delay elapses."""
        gate = RateLimitGate()
        loop = asyncio.get_running_loop()
        started = loop.time()

        gate.trip(0.05)
        await gate.wait()

        assert loop.time() - started >= 0.05 - EPSILON
        assert not gate.is_limited

    @pytest.mark.asyncio
    async def test_trip_after_reopen_creates_new_timer(self):
        """Test a later rate limit starts a fresh wait."""
        gate = RateLimitGate()

        await gate.trip_and_wait(0.01)
        await gate.trip_and_wait(0.01)

        assert gate.timers_created == 2

    @pytest.mark.asyncio
    async def test_cancel_releases_waiters(self):
        """Test cancel releases every waiter immediately."""
        gate = RateLimitGate()
        gate.trip(60)
        waiters = [asyncio.create_task(gate.wait()) for _ in range(3)]
        await asyncio.sleep(0)

        gate.cancel()

        await asyncio.wait_for(asyncio.gather(*waiters), timeout=0.5)
        assert not gate.is_limited

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_release(self):
        """Test one waiter being cancelled leaves the others waiting."""
        gate = RateLimitGate()
        gate.trip(0.05)
        cancelled = asyncio.create_task(gate.wait())
        survivor = asyncio.create_task(gate.wait())
        await asyncio.sleep(0)

        cancelled.cancel()
        await asyncio.wait_for(survivor, timeout=0.5)

        assert cancelled.cancelled()

    def test_context_counts_calls(self):
        """Test the context call counter."""
        context = GatewayContext()

        assert context.record_call() == 1
        assert context.record_call() == 2
        assert context.calls == 2


class TestGatewayRateLimiting:
    """Test 429 handling through the gateway."""

    @pytest.mark.asyncio
    async def test_rate_limited_call_retried_after_wait(self, gateway, spotify, refresher):
        """Test a 429 waits out Retry-After and retries without refreshing."""
        spotify.respond("get_saved_tracks", [api_error(429, retry_after=0.02), {"items": []}])

        result = await gateway.invoke(USER_ID, ops.saved_tracks(50))

        assert result == {"items": []}
        assert len(spotify.calls) == 2
        assert refresher.calls == []
        assert gateway.context.rate_limit.timers_created == 1

    @pytest.mark.asyncio
    async def test_missing_retry_after_uses_default(self, gateway, spotify, gateway_config):
        """Test a 429 without Retry-After waits the configured default."""
        spotify.respond("get_saved_tracks", [api_error(429), {"items": []}])
        loop = asyncio.get_running_loop()
        started = loop.time()

        await gateway.invoke(USER_ID, ops.saved_tracks(50))

        assert loop.time() - started >= gateway_config.default_retry_after - EPSILON

    @pytest.mark.asyncio
    async def test_concurrent_rate_limits_single_flight(self, make_gateway, spotify):
        """Test N concurrent 429s create one timer and no early retries."""
        retry_after = 0.05
        metrics = GatewayMetrics()
        gateway = make_gateway(metrics=metrics)
        loop = asyncio.get_running_loop()
        call_times: list[float] = []

        async def saved_tracks(limit, offset):
            call_times.append(loop.time())
            call_number = len(call_times)
            # Suspend so every caller is in flight before any response lands
            await asyncio.sleep(0)
            if call_number <= 5:
                return api_error(429, retry_after=retry_after)
            return {"items": [], "offset": offset}

        spotify.respond("get_saved_tracks", saved_tracks)

        results = await asyncio.gather(*(gateway.invoke(USER_ID, ops.saved_tracks(50, i * 50)) for i in range(5)))

        assert [result["offset"] for result in results] == [0, 50, 100, 150, 200]
        assert gateway.context.rate_limit.timers_created == 1
        assert len(call_times) == 10
        first_limited = call_times[0]
        for retried_at in call_times[5:]:
            assert retried_at - first_limited >= retry_after - EPSILON
        assert metrics.registry.get_sample_value("spotify_gateway_rate_limit_waits_total") == 5.0

    @pytest.mark.asyncio
    async def test_callers_arriving_during_wait_are_held(self, gateway, spotify):
        """Test calls started while the gate is closed wait before calling upstream."""
        spotify.respond("get_saved_tracks", [api_error(429, retry_after=0.05), {"items": []}])
        loop = asyncio.get_running_loop()

        limited = asyncio.create_task(gateway.invoke(USER_ID, ops.saved_tracks(50)))
        await asyncio.sleep(0.01)
        assert gateway.context.rate_limit.is_limited
        tripped_calls = len(spotify.calls)
        started = loop.time()

        await gateway.invoke(USER_ID, ops.saved_tracks(50, 50))
        await limited

        assert tripped_calls == 1
        assert loop.time() - started >= 0.03
