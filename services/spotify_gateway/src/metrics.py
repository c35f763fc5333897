"""
Prometheus metrics for the Spotify gateway.

Counters are advisory: they describe upstream traffic, token refreshes,
rate-limit waits and cache effectiveness but never drive behaviour.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest


class GatewayMetrics:
    """Collects and exposes metrics for the call gateway."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize the metrics collector.

        Args:
            registry: Optional Prometheus registry. Creates new one if not provided.
        """
        self.registry = registry or CollectorRegistry()

        self.upstream_calls = Counter(
            "spotify_gateway_upstream_calls_total",
            "Total number of successful upstream calls",
            ["operation"],
            registry=self.registry,
        )

        self.token_refreshes = Counter(
            "spotify_gateway_token_refreshes_total",
            "Total number of access token refreshes",
            ["reason"],
            registry=self.registry,
        )

        self.rate_limit_waits = Counter(
            "spotify_gateway_rate_limit_waits_total",
            "Total number of rate-limit waits started",
            registry=self.registry,
        )

        self.cache_requests = Counter(
            "spotify_gateway_cache_requests_total",
            "Gateway cache lookups by result",
            ["result"],
            registry=self.registry,
        )

    def record_call(self, operation: str) -> None:
        self.upstream_calls.labels(operation=operation).inc()

    def record_refresh(self, reason: str) -> None:
        self.token_refreshes.labels(reason=reason).inc()

    def record_rate_limit(self) -> None:
        self.rate_limit_waits.inc()

    def record_cache(self, hit: bool) -> None:
        self.cache_requests.labels(result="hit" if hit else "miss").inc()

    def render(self) -> tuple[bytes, str]:
        """Render the registry in Prometheus text format.

        Returns:
            Tuple of (payload, content type)
        """
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
