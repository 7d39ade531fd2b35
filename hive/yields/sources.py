"""HTTP adapters for the upstream yield sources.

Each adapter performs one request over a shared ``httpx.AsyncClient`` and maps
the payload to :class:`YieldPool` records. Malformed entries are skipped;
an error status or an unexpected payload shape raises :class:`UpstreamError`.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

import httpx

from hive.cache.coalescing import cap_list
from hive.utils.logging import get_logger
from hive.yields.types import YieldPool

logger = get_logger(__name__)

MAX_INDEX_ENTRIES = 5000
MAX_POOL_ENTRIES = 2000
MIN_VAULT_TVL_USD = 1_000_000

KAMINO_PROJECT = "kamino-lend"
JUPITER_PROJECT = "jupiter-lend"
DEFITUNA_PROJECT = "defituna"

JUPITER_STABLES = frozenset(
    {
        "USDC",
        "USDT",
        "USDC.E",
        "USDT.E",
        "USDX",
        "USDS",
        "USDG",
        "FDUSD",
        "PYUSD",
        "DAI",
        "EURC",
        "EUROE",
    }
)

# Vault APIs only report mints; symbols for the stablecoins we surface.
KNOWN_MINT_SYMBOLS: Dict[str, str] = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": "USDC",
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": "USDT",
    "2b1kV6DkPAnxd5ixfnxCpjxmKwqjjaYmCZfHsFu24GXo": "PYUSD",
    "HzwqbKZw8HxMN6bF2yFZNrht3c2iXXzpKcFu7uBEDKtr": "EURC",
    "A1KLoBrKBde8Ty9qtNQUtq3C2ortoC3u7twggz7sEto6": "USDY",
    "9zNQRsGLjNKwCUU5Gq5LR8beUCPzQMVMqKAi3SSZh54u": "FDUSD",
}


class UpstreamError(RuntimeError):
    """Raised when a yield source answers with an error or an unusable payload."""

    def __init__(
        self,
        source: str,
        message: str,
        status_code: Optional[int] = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code
        self.payload = payload


def _number(value: Any) -> Optional[float]:
    """Finite float from numbers or numeric strings, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


async def _get_json(client: httpx.AsyncClient, source: str, url: str) -> Any:
    response = await client.get(url, headers={"Accept": "application/json"})
    if response.status_code >= 400:
        raise UpstreamError(
            source,
            f"request failed ({response.status_code})",
            status_code=response.status_code,
            payload=response.text[:200],
        )
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(source, "response is not JSON", response.status_code) from exc


async def fetch_index_entries(client: httpx.AsyncClient, url: str) -> List[Dict[str, Any]]:
    """Raw pool entries from the yield index (``{"data": [...]}``), capped."""
    payload = await _get_json(client, "defillama", url)
    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, list):
        raise UpstreamError("defillama", "payload has no data list", payload=type(payload).__name__)
    return cap_list([entry for entry in data if isinstance(entry, Mapping)], MAX_INDEX_ENTRIES)


def index_entries_to_pools(entries: List[Mapping[str, Any]]) -> List[YieldPool]:
    """Map index entries to pools; entries without symbol/project/apy are skipped."""
    pools: List[YieldPool] = []
    skipped = 0
    for entry in entries:
        symbol = entry.get("symbol")
        project = entry.get("project")
        apy = _number(entry.get("apy"))
        if not isinstance(symbol, str) or not isinstance(project, str) or apy is None:
            skipped += 1
            continue
        underlying = _str_list(entry.get("underlyingTokens"))
        predictions = entry.get("predictions")
        pools.append(
            YieldPool(
                symbol=symbol,
                project=project,
                apy=apy,
                token_mint_address=underlying[0] if underlying else None,
                apy_base=_number(entry.get("apyBase")),
                apy_reward=_number(entry.get("apyReward")),
                tvl_usd=_number(entry.get("tvlUsd")) or 0.0,
                reward_tokens=_str_list(entry.get("rewardTokens")),
                underlying_tokens=underlying,
                pool_meta=entry.get("poolMeta") if isinstance(entry.get("poolMeta"), str) else None,
                url=entry.get("url") if isinstance(entry.get("url"), str) else None,
                chain=str(entry.get("chain") or ""),
                predictions=dict(predictions) if isinstance(predictions, Mapping) else None,
            )
        )
    if skipped:
        logger.warning("index_entries_skipped", count=skipped)
    return pools


async def fetch_kamino_reserves(
    client: httpx.AsyncClient, base_url: str, market: str
) -> List[YieldPool]:
    """Kamino main-market reserves; supply APY comes as a fraction."""
    url = f"{base_url.rstrip('/')}/kamino-market/{market}/reserves/metrics"
    payload = await _get_json(client, "kamino", url)
    if not isinstance(payload, list):
        raise UpstreamError("kamino", "payload is not a list", payload=type(payload).__name__)

    pools: List[YieldPool] = []
    for reserve in payload:
        if not isinstance(reserve, Mapping):
            continue
        symbol = reserve.get("liquidityToken")
        mint = reserve.get("liquidityTokenMint")
        supply_apy = _number(reserve.get("supplyApy"))
        if not symbol or not mint or supply_apy is None:
            logger.warning("kamino_reserve_skipped", reserve=reserve.get("reserve"))
            continue
        apy = supply_apy * 100
        pools.append(
            YieldPool(
                symbol=str(symbol).upper(),
                project=KAMINO_PROJECT,
                apy=apy,
                apy_base=apy,
                tvl_usd=_number(reserve.get("totalSupplyUsd")) or 0.0,
                token_mint_address=str(mint),
                underlying_tokens=[str(mint)],
                pool_meta=str(reserve["reserve"]) if reserve.get("reserve") else None,
            )
        )
    return cap_list(pools, MAX_POOL_ENTRIES)


def tvl_prediction(tvl_usd: float) -> Dict[str, Any]:
    """Coarse stability forecast derived from TVL alone."""
    if tvl_usd >= 100_000_000:
        confidence, predicted, probability = "3", "Stable/Up", 100
    elif tvl_usd >= 10_000_000:
        confidence, predicted, probability = "2", "Stable", 75
    elif tvl_usd > 0:
        confidence, predicted, probability = "1", "Down", 50
    else:
        confidence, predicted, probability = "0", "Unstable", 25
    return {
        "binnedConfidence": confidence,
        "predictedClass": predicted,
        "predictedProbability": probability,
    }


async def fetch_jupiter_pools(client: httpx.AsyncClient, url: str) -> List[YieldPool]:
    """Jupiter Lend stablecoin markets.

    Rates arrive in basis-point-like units (``520`` = 5.20 %); values at or
    below 1 are taken as percentages already.
    """
    payload = await _get_json(client, "jupiter-lend", url)
    if not isinstance(payload, list):
        raise UpstreamError("jupiter-lend", "payload is not a list", payload=type(payload).__name__)

    pools: List[YieldPool] = []
    for token in payload:
        if not isinstance(token, Mapping):
            continue
        asset = token.get("asset") if isinstance(token.get("asset"), Mapping) else {}
        symbol = str(asset.get("symbol") or "").upper()
        if symbol not in JUPITER_STABLES:
            continue
        mint = token.get("assetAddress") or asset.get("address")
        if not mint:
            continue

        rate = _number(token.get("totalRate"))
        if rate is None:
            rate = _number(token.get("supplyRate"))
        if rate is None or rate <= 0:
            continue
        apy = rate / 100 if rate > 1 else rate

        decimals = asset.get("decimals") or token.get("decimals") or 6
        total_assets = _number(token.get("totalAssets")) or 0.0
        price = _number(asset.get("price")) or 0.0
        tvl_usd = total_assets / (10 ** int(decimals)) * price

        pools.append(
            YieldPool(
                symbol=symbol,
                project=JUPITER_PROJECT,
                apy=apy,
                apy_base=apy,
                tvl_usd=tvl_usd,
                token_mint_address=str(mint),
                underlying_tokens=[str(mint)],
                pool_meta=str(token["address"]) if token.get("address") else None,
                predictions=tvl_prediction(tvl_usd),
            )
        )
    return cap_list(pools, MAX_POOL_ENTRIES)


async def fetch_defituna_vaults(client: httpx.AsyncClient, url: str) -> List[YieldPool]:
    """DefiTuna lending vaults with at least $1M deposited."""
    payload = await _get_json(client, "defituna", url)
    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, list):
        raise UpstreamError("defituna", "payload has no data list", payload=type(payload).__name__)

    pools: List[YieldPool] = []
    for vault in data:
        if not isinstance(vault, Mapping) or not vault.get("mint") or not vault.get("address"):
            continue
        mint = str(vault["mint"])
        deposited = vault.get("deposited_funds")
        tvl_usd = _number(deposited.get("usd")) if isinstance(deposited, Mapping) else None
        supply_apy = _number(vault.get("supply_apy"))
        if supply_apy is None or supply_apy < 0:
            continue
        if tvl_usd is None or tvl_usd < MIN_VAULT_TVL_USD:
            continue
        symbol = KNOWN_MINT_SYMBOLS.get(mint)
        if symbol is None:
            logger.debug("defituna_vault_unknown_mint", mint=mint)
            continue

        apy = supply_apy * 100
        pools.append(
            YieldPool(
                symbol=symbol,
                name=symbol,
                project=DEFITUNA_PROJECT,
                apy=apy,
                apy_base=apy,
                apy_reward=0.0,
                tvl_usd=tvl_usd,
                token_mint_address=mint,
                underlying_tokens=[mint],
                pool_meta=str(vault["address"]),
                predictions={
                    "binnedConfidence": "3"
                    if tvl_usd >= 100_000_000
                    else "2"
                    if tvl_usd >= 10_000_000
                    else "1",
                    "predictedClass": "high",
                    "predictedProbability": 100,
                },
                token_data={"id": mint, "symbol": symbol, "name": symbol},
            )
        )
    return pools


__all__ = [
    "DEFITUNA_PROJECT",
    "JUPITER_PROJECT",
    "KAMINO_PROJECT",
    "KNOWN_MINT_SYMBOLS",
    "UpstreamError",
    "fetch_defituna_vaults",
    "fetch_index_entries",
    "fetch_jupiter_pools",
    "fetch_kamino_reserves",
    "index_entries_to_pools",
    "tvl_prediction",
]
