"""Per-key TTL cache with in-flight request coalescing."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, MutableMapping, TypeVar

from hive.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def cap_entries(cache: MutableMapping[Any, Any], max_entries: int) -> None:
    """Evict oldest-inserted keys until ``cache`` holds at most ``max_entries``."""
    if max_entries <= 0:
        return
    while len(cache) > max_entries:
        oldest = next(iter(cache))
        del cache[oldest]


def cap_list(items: List[T], max_entries: int) -> List[T]:
    """Return the first ``max_entries`` items (or ``items`` unchanged)."""
    if max_entries <= 0:
        return items
    return items[:max_entries] if len(items) > max_entries else items


def cache_key(**parts: Any) -> str:
    """Stable JSON key for keyword parts (``None`` values included)."""
    return json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))


def _retrieve_exception(future: "asyncio.Future[Any]") -> None:
    # Mark the exception as seen when every waiter was cancelled.
    if not future.cancelled():
        future.exception()


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float


class CoalescingCache(Generic[T]):
    """Keyed TTL cache that shares one upstream call per key while in flight.

    Entries are evicted in insertion order once ``max_entries`` is exceeded;
    a key that is written again counts as newly inserted. Failed fetches are
    never stored, every waiter on that fetch receives the exception.

    The maps are only touched between awaits, so the cache is safe under a
    single asyncio loop without locks.
    """

    def __init__(self, name: str, ttl_seconds: float, max_entries: int) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, _Entry[T]] = {}
        self._in_flight: Dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def peek(self, key: str) -> T | None:
        """Return a fresh cached value without fetching."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None
        return entry.value

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key`` or fetch it exactly once."""
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            return entry.value

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(key, fetcher))
            pending.add_done_callback(_retrieve_exception)
            self._in_flight[key] = pending
        else:
            logger.debug("cache_coalesced", cache=self.name, key=key)

        # A cancelled waiter must not cancel the fetch other waiters share.
        return await asyncio.shield(pending)

    async def _fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetcher()
            self._entries.pop(key, None)
            self._entries[key] = _Entry(value=value, stored_at=time.monotonic())
            cap_entries(self._entries, self.max_entries)
            return value
        finally:
            self._in_flight.pop(key, None)

    def _is_fresh(self, entry: _Entry[T]) -> bool:
        return time.monotonic() - entry.stored_at < self.ttl_seconds


__all__ = ["CoalescingCache", "cache_key", "cap_entries", "cap_list"]
