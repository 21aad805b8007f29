"""Redis gateway for cached search responses and search analytics.

Every operation is best-effort: backend or payload errors are logged,
turned into a miss (reads) or a no-op (writes), and trip a shared circuit
that keeps the cache bypassed until its cooldown has passed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from functools import lru_cache

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from inventory_search.config import get_settings
from inventory_search.search.errors import CacheError
from inventory_search.search.schemas import SearchResponse

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (RedisError, OSError, TimeoutError)


class CacheState(str, Enum):
    enabled = "enabled"
    disabled = "disabled"


class CacheCircuit:
    """Process-wide enabled/disabled switch for the cache backend.

    ``ENABLED -> DISABLED`` on any backend failure. Once the cooldown has
    elapsed exactly one caller is let through as a probe; its success
    re-enables the cache, its failure restarts the cooldown, and its
    cancellation releases the claim for the next caller. All state
    transitions happen under a single lock.

    Args:
        cooldown_seconds: How long the cache stays disabled after a failure.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CacheState.enabled
        self._disabled_until = 0.0
        self._probing = False

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    @property
    def disabled_until(self) -> float | None:
        return self._disabled_until if self._state is CacheState.disabled else None

    def allow(self) -> bool:
        """Return True if the caller may talk to the backend now."""
        with self._lock:
            if self._state is CacheState.enabled:
                return True
            if self._probing or self._clock() < self._disabled_until:
                return False
            self._probing = True
            return True

    def record_success(self) -> None:
        with self._lock:
            recovered = self._state is CacheState.disabled
            self._state = CacheState.enabled
            self._probing = False
        if recovered:
            logger.info("Search cache re-enabled after successful probe")

    def record_failure(self) -> None:
        with self._lock:
            self._state = CacheState.disabled
            self._disabled_until = self._clock() + self._cooldown
            self._probing = False

    def release_probe(self) -> None:
        """Give up a probe claim without a verdict (the call was cancelled)."""
        with self._lock:
            self._probing = False


class SearchCache:
    """Best-effort get/set of search responses and analytics entries.

    Args:
        client: A ``redis.asyncio.Redis`` created with ``decode_responses=True``.
        circuit: Shared circuit; a private one is created when omitted.
        ttl_seconds: Default TTL for search responses.
        analytics_ttl_seconds: Default TTL for analytics entries.
    """

    def __init__(
        self,
        client: Redis,
        circuit: CacheCircuit | None = None,
        ttl_seconds: int = 300,
        analytics_ttl_seconds: int = 86400,
        cooldown_seconds: float = 30.0,
    ) -> None:
        self._client = client
        self.circuit = circuit or CacheCircuit(cooldown_seconds)
        self.ttl_seconds = ttl_seconds
        self.analytics_ttl_seconds = analytics_ttl_seconds

    @property
    def available(self) -> bool:
        return self.circuit.state is CacheState.enabled

    def _fail(self, operation: str, exc: Exception, key: str | None = None) -> None:
        self.circuit.record_failure()
        logger.warning(
            "Cache %s failed - disabling cache for %.0fs: %s (key=%s)",
            operation,
            self.circuit.cooldown_seconds,
            exc,
            key,
        )

    @staticmethod
    def _decode(raw: str) -> SearchResponse:
        try:
            return SearchResponse.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            raise CacheError(f"Unreadable cached search response: {exc}") from exc

    async def get(self, key: str) -> SearchResponse | None:
        """Return the cached response for ``key``, or None on miss or failure."""
        if not self.circuit.allow():
            return None
        try:
            raw = await self._client.get(key)
        except _BACKEND_ERRORS as exc:
            self._fail("get", exc, key)
            return None
        except BaseException:
            self.circuit.release_probe()
            raise

        if raw is None:
            self.circuit.record_success()
            return None
        try:
            response = self._decode(raw)
        except CacheError as exc:
            self._fail("decode", exc, key)
            return None
        self.circuit.record_success()
        return response

    async def set(self, key: str, response: SearchResponse, ttl: int | None = None) -> None:
        """Store a response. Failures are logged, never raised."""
        await self._setex("set", key, response.to_json(), ttl or self.ttl_seconds)

    async def set_analytics(self, key: str, payload: str, ttl: int | None = None) -> None:
        """Store one analytics entry. Failures are logged, never raised."""
        await self._setex("analytics write", key, payload, ttl or self.analytics_ttl_seconds)

    async def _setex(self, operation: str, key: str, payload: str, ttl: int) -> None:
        if not self.circuit.allow():
            return
        try:
            await self._client.setex(key, ttl, payload)
        except _BACKEND_ERRORS as exc:
            self._fail(operation, exc, key)
            return
        except BaseException:
            self.circuit.release_probe()
            raise
        self.circuit.record_success()

    async def scan_keys(self, prefix: str) -> list[str]:
        """Enumerate keys under ``prefix`` with SCAN (non-blocking for Redis)."""
        if not self.circuit.allow():
            return []
        keys: list[str] = []
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*"):
                keys.append(str(key))
        except _BACKEND_ERRORS as exc:
            self._fail("scan", exc, prefix)
            return []
        except BaseException:
            self.circuit.release_probe()
            raise
        self.circuit.record_success()
        return keys

    async def get_many(self, keys: list[str]) -> list[str | None]:
        """MGET ``keys``; missing or unreadable entries come back as None."""
        if not keys:
            return []
        if not self.circuit.allow():
            return [None] * len(keys)
        try:
            values = await self._client.mget(keys)
        except _BACKEND_ERRORS as exc:
            self._fail("mget", exc)
            return [None] * len(keys)
        except BaseException:
            self.circuit.release_probe()
            raise
        self.circuit.record_success()
        values = list(values or [])
        values.extend([None] * (len(keys) - len(values)))
        return values[: len(keys)]

    async def probe(self) -> bool:
        """PING the backend; used at startup to decide whether caching starts enabled."""
        try:
            await self._client.ping()
        except _BACKEND_ERRORS as exc:
            self.circuit.record_failure()
            logger.warning("Redis unavailable - continuing without search cache: %s", exc)
            return False
        self.circuit.record_success()
        logger.info("Redis ready for search caching")
        return True

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except _BACKEND_ERRORS:
            logger.warning("Error while closing Redis connection", exc_info=True)


@lru_cache
def get_search_cache() -> SearchCache:
    """Return the process-wide search cache (lazily connects on first use)."""
    settings = get_settings()
    client = Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    return SearchCache(
        client,
        ttl_seconds=settings.SEARCH_CACHE_TTL_SECONDS,
        analytics_ttl_seconds=settings.SEARCH_ANALYTICS_TTL_SECONDS,
        cooldown_seconds=settings.SEARCH_CACHE_COOLDOWN_SECONDS,
    )
