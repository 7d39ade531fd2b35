"""Scheduled warming of the shared yield source stores."""

from __future__ import annotations

import asyncio
import errno
import socket
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hive.cache.stale import StaleWhileRevalidate
from hive.config import Settings
from hive.utils.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "warm_yield_caches"

NETWORK_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ETIMEDOUT,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
    }
)

_NETWORK_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)


def is_network_error(exc: BaseException) -> bool:
    """True for connection, DNS and timeout failures, including wrapped ones."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, _NETWORK_EXCEPTIONS):
            return True
        if isinstance(current, OSError) and current.errno in NETWORK_ERRNOS:
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


class CacheWarmer:
    """Force-refresh every store on an interval, pausing after network failures."""

    def __init__(
        self,
        stores: Sequence[StaleWhileRevalidate[Any]],
        scheduler: AsyncIOScheduler,
        interval_seconds: int,
        backoff_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stores = list(stores)
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._skip_until = 0.0

    @property
    def paused(self) -> bool:
        return self._clock() < self._skip_until

    def start(self) -> None:
        """Register the interval job; its first run fires immediately."""
        self.scheduler.add_job(
            self.run_once,
            trigger="interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(
            "cache_warmer_started",
            stores=[store.name for store in self.stores],
            interval=self.interval_seconds,
        )

    async def run_once(self) -> None:
        if self.paused:
            logger.debug(
                "cache_warm_skipped",
                resume_in=round(self._skip_until - self._clock(), 1),
            )
            return

        results = await asyncio.gather(
            *(store.get(force_refresh=True) for store in self.stores),
            return_exceptions=True,
        )
        failures = [
            (store, result)
            for store, result in zip(self.stores, results)
            if isinstance(result, Exception)
        ]
        for store, exc in failures:
            logger.warning("cache_warm_failed", store=store.name, error=str(exc))

        if any(is_network_error(exc) for _, exc in failures):
            self._skip_until = self._clock() + self.backoff_seconds
            logger.warning("cache_warm_backoff", seconds=self.backoff_seconds)
            return
        logger.info(
            "cache_warm_complete", stores=len(self.stores), failed=len(failures)
        )


_warmer: Optional[CacheWarmer] = None


def start_cache_warmer(
    stores: Sequence[StaleWhileRevalidate[Any]],
    scheduler: AsyncIOScheduler,
    settings: Settings,
) -> Optional[CacheWarmer]:
    """Start the process-wide warmer once; later calls return the same one."""
    global _warmer
    if not settings.cache_warmer_enabled:
        logger.info("cache_warmer_disabled")
        return None
    if _warmer is not None:
        return _warmer
    _warmer = CacheWarmer(
        stores,
        scheduler,
        interval_seconds=settings.cache_warm_interval_seconds,
        backoff_seconds=settings.cache_warm_backoff_seconds,
    )
    _warmer.start()
    return _warmer


def reset_cache_warmer() -> None:
    """Forget the process-wide warmer (tests and shutdown)."""
    global _warmer
    _warmer = None


__all__ = [
    "CacheWarmer",
    "JOB_ID",
    "is_network_error",
    "reset_cache_warmer",
    "start_cache_warmer",
]
