"""Cache protocol + in-process TTL cache for rate-limit counters.

The RateLimitCounter only needs five operations from its cache backend:
get / set(ttl) / delete / increment(ttl) / clear. Any shared backend
offering an atomic increment can implement the Cache protocol;
MemoryCache is the single-process implementation used by default.

MemoryCache:
  - OrderedDict-based LRU with per-entry absolute expiry
  - expired entries are treated as absent and dropped on access
  - no method awaits between read and write, so every operation (including
    increment) is atomic with respect to other coroutines on the same loop
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from sentinel_key.constants import MEMORY_CACHE_MAXSIZE
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Cache(Protocol):
    """Async key/value cache with TTL and an atomic counter primitive."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key``, or None when absent/expired."""
        ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` for ``ttl_seconds``."""
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key``. Absent keys are not an error."""
        ...

    async def increment(self, key: str, ttl_seconds: float) -> int:
        """Atomically add 1 and return the new value.

        A missing or expired key starts from 0 and receives ``ttl_seconds``;
        an existing counter keeps its original expiry.
        """
        ...

    async def clear(self) -> None:
        """Drop every entry."""
        ...


class MemoryCache:
    """In-process Cache implementation (single worker deployments and tests).

    Args:
        maxsize: Entry cap; the least-recently-used entry is evicted past it.
        clock:   Time source (UNIX seconds). Injected by tests.
    """

    def __init__(
        self,
        maxsize: int = MEMORY_CACHE_MAXSIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._maxsize = maxsize
        self._clock = clock
        # key -> (value, expires_at)
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> Optional[tuple[Any, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)  # mark as recently used
        return entry

    def _store(self, key: str, value: Any, expires_at: float) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._maxsize:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache entry evicted (LRU)", key=evicted)
        self._entries[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._store(key, value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def increment(self, key: str, ttl_seconds: float) -> int:
        entry = self._live(key)
        if entry is None:
            value, expires_at = 0, self._clock() + ttl_seconds
        else:
            value, expires_at = entry
        value = int(value) + 1
        self._store(key, value, expires_at)
        return value

    async def clear(self) -> None:
        self._entries.clear()
        logger.debug("Cache cleared")


assert isinstance(MemoryCache(), Cache), (
    "MemoryCache does not satisfy Cache protocol — implementation error"
)
