"""RateLimitCounter — per-key usage and failure windows.

Two counters per key, both cache-resident and TTL-bound (absence ⇒ zero):

  sentinel_key:usage:{key_id}     list of request timestamps, pruned to the
                                  configured window on every write, TTL = window.
                                  Read-modify-write: best-effort under
                                  concurrent bursts (may under-count slightly).

  sentinel_key:failures:{key_id}  integer maintained with Cache.increment()
                                  (atomic), TTL = failure window (1 hour by
                                  default) from the first failure. Blocking
                                  decisions are therefore never weaker than
                                  exact counting.

  sentinel_key:rate_notice:{key_id}  claim marker, TTL = usage window. Only
                                  the first claimant per window sends the
                                  rate_limit notification.

On reaching failure_limit only the ``blocked`` column of the key is set, via
KeyStore.set_blocked(), and the failure counter is cleared. A limit of 0
disables a check.
"""

from __future__ import annotations

import time
from typing import Callable

from sentinel_key.cache.memory import Cache
from sentinel_key.constants import CACHE_PREFIX, FAILURE_WINDOW_SECONDS
from sentinel_key.store.protocol import KeyStore
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


def usage_cache_key(key_id: str) -> str:
    return f"{CACHE_PREFIX}:usage:{key_id}"


def failure_cache_key(key_id: str) -> str:
    return f"{CACHE_PREFIX}:failures:{key_id}"


def notice_cache_key(key_id: str) -> str:
    return f"{CACHE_PREFIX}:rate_notice:{key_id}"


class RateLimitCounter:
    """Time-windowed usage and failure accounting.

    Args:
        cache: Counter storage (must provide an atomic increment).
        store: Key store, used to persist the blocked flag.
        clock: Time source (UNIX seconds).
    """

    def __init__(
        self,
        cache: Cache,
        store: KeyStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._store = store
        self._clock = clock

    async def record_and_check_usage(self, key_id: str, window_seconds: int, limit: int) -> bool:
        """Record one use of ``key_id`` and report whether it exceeds ``limit``.

        The use is exceeded when ``limit`` uses are already inside the
        trailing window (limit 5 → uses 1–5 pass, the 6th is exceeded).

        Returns:
            True if rate-limited. Always False when ``limit`` is 0.
        """
        if limit <= 0:
            return False

        now = self._clock()
        cache_key = usage_cache_key(key_id)
        events = await self._cache.get(cache_key) or []
        window = [ts for ts in events if now - ts < window_seconds]

        exceeded = len(window) >= limit
        window.append(now)
        await self._cache.set(cache_key, window, window_seconds)

        if exceeded:
            logger.warning(
                "API key exceeded rate limit",
                key_id=key_id,
                limit=limit,
                window_seconds=window_seconds,
            )
        return exceeded

    async def record_failure_and_check_block(
        self,
        key_id: str,
        limit: int,
        window_seconds: int = FAILURE_WINDOW_SECONDS,
    ) -> bool:
        """Count one failure; block the key once ``limit`` is reached.

        The counter lives for ``window_seconds`` from the first failure.

        Returns:
            True if this failure blocked the key. Always False when ``limit`` is 0.

        Raises:
            StorageError: The blocked flag could not be persisted.
        """
        if limit <= 0:
            return False

        cache_key = failure_cache_key(key_id)
        failures = await self._cache.increment(cache_key, window_seconds)
        if failures < limit:
            return False

        await self._store.set_blocked(key_id, True, self._clock())

        await self._cache.delete(cache_key)
        logger.warning(
            "API key blocked after repeated failures",
            key_id=key_id,
            failures=failures,
            limit=limit,
        )
        return True

    async def reset_failure_window(self, key_id: str) -> None:
        """Forget all recorded failures for ``key_id`` (no-op when none)."""
        await self._cache.delete(failure_cache_key(key_id))

    async def failure_count(self, key_id: str) -> int:
        """Failures currently counted for ``key_id``."""
        value = await self._cache.get(failure_cache_key(key_id))
        return int(value) if value else 0

    async def usage_count(self, key_id: str, window_seconds: int) -> int:
        """Uses of ``key_id`` inside the trailing window (read-only)."""
        now = self._clock()
        events = await self._cache.get(usage_cache_key(key_id)) or []
        return sum(1 for ts in events if now - ts < window_seconds)

    async def claim_rate_limit_notice(self, key_id: str, window_seconds: int) -> bool:
        """True for the first caller per ``window_seconds``, False afterwards."""
        claims = await self._cache.increment(notice_cache_key(key_id), window_seconds)
        return claims == 1

    async def reset_key(self, key_id: str) -> None:
        """Drop every window held for ``key_id`` (used when its material changes)."""
        for cache_key in (usage_cache_key(key_id), failure_cache_key(key_id), notice_cache_key(key_id)):
            await self._cache.delete(cache_key)
