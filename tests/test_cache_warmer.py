"""Tests for the scheduled yield cache warmer."""

import asyncio
import errno

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hive.config import Settings
from hive.jobs.cache_warmer import (
    JOB_ID,
    CacheWarmer,
    is_network_error,
    reset_cache_warmer,
    start_cache_warmer,
)
from hive.yields.sources import UpstreamError


class DummyStore:
    def __init__(self, name, error=None):
        self.name = name
        self.error = error
        self.forced = []

    async def get(self, force_refresh=False):
        self.forced.append(force_refresh)
        if self.error is not None:
            raise self.error
        return []


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture(autouse=True)
def _reset_warmer():
    reset_cache_warmer()
    yield
    reset_cache_warmer()


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def _warmer(stores, clock) -> CacheWarmer:
    return CacheWarmer(
        stores, scheduler=None, interval_seconds=240, backoff_seconds=600, clock=clock
    )


class TestNetworkErrors:
    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            httpx.RemoteProtocolError("closed"),
            ConnectionResetError("reset"),
            TimeoutError(),
            OSError(errno.ECONNREFUSED, "refused"),
        ],
    )
    def test_network_class_failures(self, exc) -> None:
        assert is_network_error(exc)

    def test_wrapped_network_failure(self) -> None:
        try:
            try:
                raise httpx.ConnectError("refused")
            except httpx.ConnectError as inner:
                raise UpstreamError("kamino", "request failed") from inner
        except UpstreamError as exc:
            assert is_network_error(exc)

    def test_other_failures(self) -> None:
        assert not is_network_error(ValueError("bad payload"))
        assert not is_network_error(UpstreamError("kamino", "request failed (500)", 500))
        assert not is_network_error(OSError(errno.ENOENT, "missing"))


class TestCacheWarmer:
    @pytest.mark.asyncio
    async def test_run_force_refreshes_every_store(self) -> None:
        stores = [DummyStore("defillama"), DummyStore("kamino")]
        warmer = _warmer(stores, FakeClock())

        await warmer.run_once()

        assert [store.forced for store in stores] == [[True], [True]]
        assert not warmer.paused

    @pytest.mark.asyncio
    async def test_network_failure_pauses_warming(self) -> None:
        clock = FakeClock()
        healthy = DummyStore("defillama")
        broken = DummyStore("kamino", error=httpx.ConnectError("refused"))
        warmer = _warmer([healthy, broken], clock)

        await warmer.run_once()
        assert warmer.paused

        await warmer.run_once()
        assert len(healthy.forced) == 1

        clock.now += 601
        assert not warmer.paused
        await warmer.run_once()
        assert len(healthy.forced) == 2

    @pytest.mark.asyncio
    async def test_other_failures_do_not_pause(self) -> None:
        broken = DummyStore("defituna", error=UpstreamError("defituna", "bad payload"))
        warmer = _warmer([broken], FakeClock())

        await warmer.run_once()
        await warmer.run_once()

        assert len(broken.forced) == 2
        assert not warmer.paused


class TestStartCacheWarmer:
    @pytest.mark.asyncio
    async def test_registers_interval_job_once(self) -> None:
        scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        stores = [DummyStore("defillama")]
        settings = _settings(CACHE_WARM_INTERVAL_SECONDS=120)

        warmer = start_cache_warmer(stores, scheduler, settings)
        again = start_cache_warmer([DummyStore("other")], scheduler, settings)

        assert warmer is not None
        assert again is warmer
        assert warmer.interval_seconds == 120
        assert scheduler.get_job(JOB_ID) is not None
        assert len(scheduler.get_jobs()) == 1

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self) -> None:
        scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        settings = _settings(CACHE_WARMER_ENABLED=False)

        assert start_cache_warmer([DummyStore("defillama")], scheduler, settings) is None
        assert scheduler.get_jobs() == []
