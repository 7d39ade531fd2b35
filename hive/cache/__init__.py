"""In-memory caching primitives shared by tools and yield sources."""

from hive.cache.coalescing import CoalescingCache, cache_key, cap_entries, cap_list
from hive.cache.stale import CacheState, StaleWhileRevalidate

__all__ = [
    "CacheState",
    "CoalescingCache",
    "StaleWhileRevalidate",
    "cache_key",
    "cap_entries",
    "cap_list",
]
