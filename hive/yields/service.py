"""Yield tools backed by cached upstream sources."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx
from pydantic import ValidationError

from hive.cache.stale import StaleWhileRevalidate
from hive.config import Settings
from hive.tools import Tool, tool_matches
from hive.utils.logging import get_logger
from hive.utils.metrics import timed
from hive.yields.aggregator import (
    MustIncludeProtocols,
    SelectionPolicy,
    aggregate_lending,
    aggregate_staking,
)
from hive.yields.sources import (
    fetch_defituna_vaults,
    fetch_index_entries,
    fetch_jupiter_pools,
    fetch_kamino_reserves,
    index_entries_to_pools,
)
from hive.yields.types import SourceBatch, SourceKind, YieldPool, YieldQuery, YieldResult

logger = get_logger(__name__)

LENDING_UNAVAILABLE = (
    "Lending yield data is temporarily unavailable from every source. Please try again shortly."
)
STAKING_UNAVAILABLE = (
    "Liquid staking yield data is temporarily unavailable. Please try again shortly."
)

QueryInput = Union[YieldQuery, Mapping[str, Any], None]


@dataclass
class _Source:
    name: str
    kind: SourceKind
    store: StaleWhileRevalidate[Any]
    to_pools: Callable[[Any], List[YieldPool]] = list


def _coerce_query(query: QueryInput) -> YieldQuery:
    """Validate tool args; fields the model filled with junk are dropped."""
    if query is None:
        return YieldQuery()
    if isinstance(query, YieldQuery):
        return query
    data = dict(query)
    try:
        return YieldQuery.model_validate(data)
    except ValidationError:
        valid: Dict[str, Any] = {}
        dropped: List[str] = []
        for key, value in data.items():
            try:
                YieldQuery.model_validate({key: value})
            except ValidationError:
                dropped.append(str(key))
            else:
                valid[key] = value
        logger.warning("yield_query_args_dropped", fields=dropped)
        return YieldQuery.model_validate(valid)


class YieldService:
    """Lending and liquid-staking yield tools.

    Each upstream sits behind its own stale-while-revalidate store, so a tool
    call normally returns from memory while stale data refreshes in the
    background. The stores are exposed through :attr:`stores` for the cache
    warmer.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        policy: Optional[SelectionPolicy] = None,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.policy = policy or MustIncludeProtocols(settings.must_include_protocols)

        def store(name: str, fetcher: Callable[[], Any], ttl: int) -> StaleWhileRevalidate[Any]:
            return StaleWhileRevalidate(
                name,
                fetcher,
                ttl_seconds=ttl,
                max_stale_seconds=max(ttl, settings.cache_max_stale_seconds),
            )

        self.index_store = store(
            "defillama", self._fetch_index, settings.index_cache_ttl_seconds
        )
        self.kamino_store = store(
            "kamino", self._fetch_kamino, settings.onchain_cache_ttl_seconds
        )
        self.jupiter_store = store(
            "jupiter-lend", self._fetch_jupiter, settings.vault_cache_ttl_seconds
        )
        self.defituna_store = store(
            "defituna", self._fetch_defituna, settings.vault_cache_ttl_seconds
        )

    @property
    def stores(self) -> List[StaleWhileRevalidate[Any]]:
        return [self.index_store, self.kamino_store, self.jupiter_store, self.defituna_store]

    async def _fetch_index(self) -> List[Dict[str, Any]]:
        return await fetch_index_entries(self.client, self.settings.defillama_pools_url)

    async def _fetch_kamino(self) -> List[YieldPool]:
        return await fetch_kamino_reserves(
            self.client, self.settings.kamino_api_url, self.settings.kamino_market
        )

    async def _fetch_jupiter(self) -> List[YieldPool]:
        return await fetch_jupiter_pools(self.client, self.settings.jupiter_lend_url)

    async def _fetch_defituna(self) -> List[YieldPool]:
        return await fetch_defituna_vaults(self.client, self.settings.defituna_vaults_url)

    async def _collect(self, sources: Sequence[_Source]) -> Tuple[List[SourceBatch], List[str]]:
        results = await asyncio.gather(
            *(source.store.get() for source in sources), return_exceptions=True
        )
        batches: List[SourceBatch] = []
        failed: List[str] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                logger.warning("yield_source_failed", source=source.name, error=str(result))
                failed.append(source.name)
                continue
            if isinstance(result, BaseException):
                raise result
            batches.append(SourceBatch(source.name, source.kind, source.to_pools(result)))
        return batches, failed

    async def lending_yields(self, query: QueryInput = None) -> YieldResult:
        """Best stablecoin lending pools across Kamino, Jupiter Lend and DefiTuna."""
        parsed = _coerce_query(query)
        sources = [
            _Source("defillama", SourceKind.INDEX, self.index_store, index_entries_to_pools),
            _Source("kamino", SourceKind.ONCHAIN, self.kamino_store),
            _Source("defituna", SourceKind.VAULT, self.defituna_store),
            _Source("jupiter-lend", SourceKind.VAULT, self.jupiter_store),
        ]
        with timed("tool.lending.yields"):
            batches, failed = await self._collect(sources)
            if len(failed) == len(sources):
                logger.error("lending_yields_unavailable", failed=failed)
                return YieldResult.unavailable(LENDING_UNAVAILABLE)
            return aggregate_lending(batches, parsed, self.policy)

    async def liquid_staking_yields(self, query: QueryInput = None) -> YieldResult:
        """Best liquid staking pools from the yield index."""
        parsed = _coerce_query(query)
        with timed("tool.staking.yields"):
            batches, failed = await self._collect(
                [_Source("defillama", SourceKind.INDEX, self.index_store, index_entries_to_pools)]
            )
            if failed:
                logger.error("staking_yields_unavailable", failed=failed)
                return YieldResult.unavailable(STAKING_UNAVAILABLE)
            return aggregate_staking(batches[0].pools, parsed)

    async def run_tool(self, name: str, args: QueryInput = None) -> YieldResult:
        """Run a yield tool by its (possibly namespaced) name."""
        if tool_matches(name, Tool.LENDING_YIELDS):
            return await self.lending_yields(args)
        if tool_matches(name, Tool.LIQUID_STAKING_YIELDS):
            return await self.liquid_staking_yields(args)
        raise KeyError(f"Unknown yield tool: {name}")

    async def call_tool(self, name: str, args: QueryInput = None) -> Dict[str, Any]:
        """Tool-result payload (``{message, body}``) for :meth:`run_tool`."""
        result = await self.run_tool(name, args)
        return result.as_tool_result()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "YieldService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["LENDING_UNAVAILABLE", "STAKING_UNAVAILABLE", "YieldService"]
