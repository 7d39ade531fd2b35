"""Stale-while-revalidate store for a single shared upstream resource."""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, Set, TypeVar

from hive.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheState(str, Enum):
    """Staleness tier of a cached value."""

    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


class StaleWhileRevalidate(Generic[T]):
    """Serve cached data while refreshing it in the background.

    * fresh (age < ttl): return the cached value, no network call
    * stale (ttl <= age < max_stale): return the cached value and start a
      background refresh; its failure is logged, never raised
    * expired (age >= max_stale or nothing cached): await a refresh

    ``get(force_refresh=True)`` always awaits a refresh. All refreshes share
    one in-flight task.
    """

    def __init__(
        self,
        name: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        max_stale_seconds: float,
    ) -> None:
        if max_stale_seconds < ttl_seconds:
            raise ValueError(
                f"max_stale_seconds ({max_stale_seconds}) must be >= ttl_seconds ({ttl_seconds})"
            )
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_stale_seconds = max_stale_seconds
        self._fetcher = fetcher
        self._value: Optional[T] = None
        self._has_value = False
        self._cached_at = 0.0
        self._in_flight: Optional[asyncio.Task[T]] = None
        self._background: Set[asyncio.Task[T]] = set()

    @property
    def refreshing(self) -> bool:
        return self._in_flight is not None

    def age(self) -> Optional[float]:
        if not self._has_value:
            return None
        return time.monotonic() - self._cached_at

    def state(self) -> CacheState:
        age = self.age()
        if age is None or age >= self.max_stale_seconds:
            return CacheState.EXPIRED
        if age < self.ttl_seconds:
            return CacheState.FRESH
        return CacheState.STALE

    async def get(self, force_refresh: bool = False) -> T:
        state = self.state()

        if not force_refresh and state is CacheState.FRESH:
            return self._value  # type: ignore[return-value]

        if force_refresh or state is CacheState.EXPIRED:
            return await asyncio.shield(self._refresh())

        task = self._refresh()
        if task not in self._background:
            self._background.add(task)
            task.add_done_callback(self._on_background_done)
        logger.debug("swr_background_refresh", store=self.name)
        return self._value  # type: ignore[return-value]

    def _refresh(self) -> "asyncio.Task[T]":
        if self._in_flight is None:
            self._in_flight = asyncio.create_task(self._fetch_and_store())
        return self._in_flight

    async def _fetch_and_store(self) -> T:
        started = time.monotonic()
        try:
            value = await self._fetcher()
        except Exception as exc:
            logger.error("swr_refresh_failed", store=self.name, error=str(exc))
            raise
        finally:
            self._in_flight = None
        self._value = value
        self._has_value = True
        self._cached_at = time.monotonic()
        logger.info(
            "swr_refreshed",
            store=self.name,
            duration_ms=round((self._cached_at - started) * 1000, 2),
        )
        return value

    def _on_background_done(self, task: "asyncio.Task[T]") -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "swr_background_refresh_failed", store=self.name, error=str(exc)
            )


__all__ = ["CacheState", "StaleWhileRevalidate"]
