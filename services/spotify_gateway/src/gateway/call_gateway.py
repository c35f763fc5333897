"""The call gateway: the single path for every upstream Spotify call.

For each ``Operation`` the gateway:

1. serves cacheable reads from the result cache when possible;
2. waits while the shared rate-limit gate is closed;
3. loads the user's credential and refreshes an expired access token;
4. runs the operation with a session bound to the resolved token;
5. on a 429, trips the gate and retries the whole call once it reopens;
6. on any other failure, refreshes the token and retries exactly once;
7. counts the successful call and caches cacheable results.
"""

import asyncio
import json
import weakref
from typing import Any

import structlog

from services.spotify_gateway.src.cache.result_cache import ResultCache, build_cache_key
from services.spotify_gateway.src.config import GatewayConfig
from services.spotify_gateway.src.exceptions import (
    RateLimitedError,
    SpotifyAPIError,
    UpstreamCallFailedError,
    UserNotAuthenticatedError,
)
from services.spotify_gateway.src.gateway.context import GatewayContext
from services.spotify_gateway.src.metrics import GatewayMetrics
from services.spotify_gateway.src.models.user import UserCredential
from services.spotify_gateway.src.repositories.credentials import CredentialStore
from services.spotify_gateway.src.spotify.auth import TokenRefresher
from services.spotify_gateway.src.spotify.client import SpotifyClient
from services.spotify_gateway.src.spotify.operations import Operation

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2


class CallGateway:
    """Runs upstream operations with token lifecycle, backoff and caching."""

    def __init__(
        self,
        credentials: CredentialStore,
        refresher: TokenRefresher,
        client: SpotifyClient,
        cache: ResultCache | None = None,
        context: GatewayContext | None = None,
        config: GatewayConfig | None = None,
        metrics: GatewayMetrics | None = None,
        cache_ttl: int = 3600,
    ) -> None:
        """Initialize the gateway.

        Args:
            credentials: Store holding each user's tokens
            refresher: OAuth token refresher
            client: Upstream HTTP client
            cache: Optional result cache for cacheable operations
            context: Call counter and rate-limit gate shared by all calls
            config: Gateway tuning
            metrics: Optional Prometheus metrics
            cache_ttl: TTL for cached results in seconds
        """
        self.credentials = credentials
        self.refresher = refresher
        self.client = client
        self.cache = cache
        self.context = context or GatewayContext()
        self.config = config or GatewayConfig()
        self.metrics = metrics
        self.cache_ttl = cache_ttl
        # Entries disappear once no coroutine holds or awaits the lock
        self._refresh_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def invoke(self, user_id: str, operation: Operation) -> Any:
        """Run one upstream operation on behalf of a user.

        Args:
            user_id: External user id
            operation: Operation descriptor to run

        Returns:
            Decoded upstream response

        Raises:
            UserNotAuthenticatedError: If the user has no stored credential
            AuthExchangeError: If a token refresh is rejected
            UpstreamCallFailedError: If the operation fails after its retry
            PersistenceError: If the credential store or cache fails
        """
        cache_key = None
        if operation.cacheable and self.cache is not None:
            cache_key = build_cache_key("gateway", user_id, operation.identity)
            cached = await self.cache.get(cache_key)
            if self.metrics:
                self.metrics.record_cache(cached is not None)
            if cached is not None:
                logger.debug("Serving cached result", user_id=user_id, operation=operation.name)
                return json.loads(cached)

        while True:
            await self.context.rate_limit.wait()
            try:
                result = await self._invoke_authorized(user_id, operation)
            except RateLimitedError as e:
                if self.metrics:
                    self.metrics.record_rate_limit()
                await self.context.rate_limit.trip_and_wait(e.retry_after)
                continue
            break

        self.context.record_call()
        if self.metrics:
            self.metrics.record_call(operation.name)

        if cache_key is not None and self.cache is not None:
            await self.cache.set_with_ttl(cache_key, json.dumps(result), self.cache_ttl)

        return result

    async def _invoke_authorized(self, user_id: str, operation: Operation) -> Any:
        credential = await self._load_credential(user_id)
        access_token = await self._resolve_access_token(credential)

        attempt = 0
        while True:
            attempt += 1
            if self.config.request_delay > 0:
                await asyncio.sleep(self.config.request_delay)

            try:
                return await operation.call(self.client.authorized(access_token))
            except SpotifyAPIError as e:
                if e.is_rate_limited:
                    retry_after = e.retry_after if e.retry_after is not None else self.config.default_retry_after
                    raise RateLimitedError(retry_after, operation.name) from e

                if attempt >= MAX_ATTEMPTS or not self._should_refresh(e):
                    logger.error(
                        "Upstream call failed",
                        user_id=user_id,
                        operation=operation.name,
                        attempts=attempt,
                        status_code=e.status_code,
                    )
                    raise UpstreamCallFailedError(operation.name, e, attempt) from e

                logger.warning(
                    "Upstream call failed, refreshing token and retrying",
                    user_id=user_id,
                    operation=operation.name,
                    status_code=e.status_code,
                    error=e.message,
                )

            access_token = await self._refresh_after_failure(user_id, access_token)

    def _should_refresh(self, error: SpotifyAPIError) -> bool:
        return self.config.refresh_on_any_error or error.is_unauthorized

    async def _load_credential(self, user_id: str) -> UserCredential:
        credential = await self.credentials.get(user_id)
        if credential is None:
            raise UserNotAuthenticatedError(user_id)
        return credential

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(user_id)
        if lock is None:
            lock = self._refresh_locks[user_id] = asyncio.Lock()
        return lock

    async def _resolve_access_token(self, credential: UserCredential) -> str:
        window = self.config.token_expiry_seconds
        if not credential.is_expired(window):
            return credential.access_token

        async with self._lock_for(credential.external_id):
            # Another call may have refreshed while this one waited for the lock
            current = await self._load_credential(credential.external_id)
            if not current.is_expired(window):
                return current.access_token
            return await self._refresh(current, reason="expired")

    async def _refresh_after_failure(self, user_id: str, failed_token: str) -> str:
        async with self._lock_for(user_id):
            current = await self._load_credential(user_id)
            if current.access_token != failed_token:
                return current.access_token
            return await self._refresh(current, reason="call_failed")

    async def _refresh(self, credential: UserCredential, reason: str) -> str:
        pair = await self.refresher.refresh(credential.refresh_token)
        await self.credentials.upsert(
            credential.external_id,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )
        if self.metrics:
            self.metrics.record_refresh(reason)
        logger.info("Stored refreshed credentials", user_id=credential.external_id, reason=reason)
        return pair.access_token
