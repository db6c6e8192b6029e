"""Sentinel Key cache package.

    from sentinel_key.cache import Cache, MemoryCache
"""

from sentinel_key.cache.memory import Cache, MemoryCache

__all__ = ["Cache", "MemoryCache"]
