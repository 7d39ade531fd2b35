"""Market tools (trending tokens, top traders) with short-lived caches."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx

from hive.cache.coalescing import CoalescingCache, cache_key
from hive.config import Settings
from hive.utils.logging import get_logger
from hive.utils.metrics import record_timing
from hive.yields.sources import UpstreamError

logger = get_logger(__name__)

TRENDING_TTL_SECONDS = 30
TOP_TRADERS_TTL_SECONDS = 60
MAX_CACHE_ENTRIES = 50
DEFAULT_TRENDING_LIMIT = 10
TIME_FRAMES = ("yesterday", "today", "1W")


class BirdeyeClient:
    """Thin async client for the Birdeye public API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: Optional[str] = None,
        chain: str = "solana",
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.chain = chain

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"accept": "application/json", "x-chain": self.chain}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        response = await self.client.get(
            f"{self.base_url}{path}", params=params, headers=headers
        )
        if response.status_code >= 400:
            raise UpstreamError(
                "birdeye",
                f"{path} failed ({response.status_code})",
                status_code=response.status_code,
                payload=response.text[:200],
            )
        payload = response.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise UpstreamError("birdeye", f"{path} returned no data", payload=payload)
        return data

    async def trending_tokens(self, offset: int = 0, limit: int = DEFAULT_TRENDING_LIMIT) -> List[Any]:
        data = await self._get(
            "/defi/token_trending",
            {"sort_by": "rank", "sort_type": "asc", "offset": offset, "limit": limit},
        )
        return list(data.get("tokens") or [])

    async def top_traders(self, time_frame: str = "today") -> List[Any]:
        data = await self._get(
            "/trader/gainers-losers",
            {"type": time_frame, "sort_by": "PnL", "sort_type": "desc", "offset": 0, "limit": 10},
        )
        return list(data.get("items") or [])


class MarketService:
    """Market tools; each result is cached briefly and shared while in flight.

    Upstream failures produce an error message with an empty body and are not
    cached.
    """

    def __init__(self, birdeye: BirdeyeClient) -> None:
        self.birdeye = birdeye
        self._trending: CoalescingCache[Dict[str, Any]] = CoalescingCache(
            "market.trending", ttl_seconds=TRENDING_TTL_SECONDS, max_entries=MAX_CACHE_ENTRIES
        )
        self._traders: CoalescingCache[Dict[str, Any]] = CoalescingCache(
            "market.top_traders", ttl_seconds=TOP_TRADERS_TTL_SECONDS, max_entries=MAX_CACHE_ENTRIES
        )

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "MarketService":
        return cls(BirdeyeClient(client, settings.birdeye_base_url, settings.birdeye_api_key))

    async def trending_tokens(self, limit: int = DEFAULT_TRENDING_LIMIT) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            tokens = await self.birdeye.trending_tokens(0, limit)
            return {
                "message": (
                    f"Found {len(tokens)} trending tokens. The user is shown the tokens, "
                    "do not list them. Ask the user what they want to do with the coin."
                ),
                "body": {"tokens": tokens},
            }

        started = time.perf_counter()
        try:
            return await self._trending.get_or_fetch(cache_key(limit=limit), fetch)
        except (httpx.HTTPError, UpstreamError, ValueError) as exc:
            logger.warning("trending_tokens_failed", error=str(exc))
            return {
                "message": f"Error getting trending tokens: {exc}",
                "body": {"tokens": []},
            }
        finally:
            record_timing("tool.market.trending-tokens", (time.perf_counter() - started) * 1000)

    async def top_traders(self, time_frame: str = "today") -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            traders = await self.birdeye.top_traders(time_frame)
            return {
                "message": (
                    f"Found {len(traders)} top traders. The user is shown the traders, "
                    "do not list them. Ask the user what they want to do with the traders."
                ),
                "body": {"traders": traders},
            }

        started = time.perf_counter()
        try:
            return await self._traders.get_or_fetch(cache_key(timeFrame=time_frame), fetch)
        except (httpx.HTTPError, UpstreamError, ValueError) as exc:
            logger.warning("top_traders_failed", time_frame=time_frame, error=str(exc))
            return {
                "message": f"Error getting top traders: {exc}",
                "body": {"traders": []},
            }
        finally:
            record_timing("tool.market.top-traders", (time.perf_counter() - started) * 1000)


__all__ = ["BirdeyeClient", "MarketService", "TIME_FRAMES"]
