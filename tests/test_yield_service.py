"""Tests for the cached yield tools."""

from collections import Counter

import httpx
import pytest

from hive.config import Settings
from hive.utils.metrics import metrics_snapshot, reset_metrics
from hive.yields.service import LENDING_UNAVAILABLE, YieldService

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
PYUSD = "2b1kV6DkPAnxd5ixfnxCpjxmKwqjjaYmCZfHsFu24GXo"

INDEX_PAYLOAD = {
    "data": [
        {
            "chain": "Solana",
            "project": "kamino-lend",
            "symbol": "USDC",
            "apy": 4.0,
            "tvlUsd": 1_000_000,
            "underlyingTokens": [USDC],
        },
        {
            "chain": "Solana",
            "project": "jito-liquid-staking",
            "symbol": "JITOSOL",
            "apy": 7.5,
            "tvlUsd": 2_000_000_000,
            "underlyingTokens": ["jitosol-mint"],
        },
        {
            "chain": "Solana",
            "project": "marinade-liquid-staking",
            "symbol": "MSOL",
            "apy": 7.0,
            "tvlUsd": 1_000_000_000,
            "underlyingTokens": ["msol-mint"],
        },
    ]
}
KAMINO_PAYLOAD = [
    {
        "reserve": "reserve-usdc",
        "liquidityToken": "USDC",
        "liquidityTokenMint": USDC,
        "supplyApy": 0.06,
        "totalSupplyUsd": 3_000_000,
    }
]
JUPITER_PAYLOAD = [
    {
        "address": "jl-usdt",
        "assetAddress": USDT,
        "asset": {"symbol": "USDT", "decimals": 6, "price": 1},
        "totalRate": 450,
        "totalAssets": 20_000_000_000_000,
    }
]
DEFITUNA_PAYLOAD = {
    "data": [
        {
            "address": "vault-pyusd",
            "mint": PYUSD,
            "supply_apy": 0.05,
            "deposited_funds": {"usd": 2_000_000},
        }
    ]
}

PAYLOADS = {
    "yields.llama.fi": INDEX_PAYLOAD,
    "api.kamino.finance": KAMINO_PAYLOAD,
    "api.solana.fluid.io": JUPITER_PAYLOAD,
    "api.defituna.com": DEFITUNA_PAYLOAD,
}


class Upstreams:
    """Mock transport serving canned payloads per host."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.hits = Counter()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.hits[host] += 1
        if host in self.failing:
            return httpx.Response(500, text="upstream error")
        return httpx.Response(200, json=PAYLOADS[host])


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


def _service(upstreams: Upstreams) -> YieldService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstreams))
    return YieldService(Settings(_env_file=None), client=client)


@pytest.mark.asyncio
async def test_lending_merges_all_sources() -> None:
    upstreams = Upstreams()
    service = _service(upstreams)

    result = await service.lending_yields({"limit": 3})
    await service.client.aclose()

    assert result.status == "ok"
    by_symbol = {pool.symbol: pool for pool in result.pools}
    assert set(by_symbol) == {"USDC", "USDT", "PYUSD"}
    assert by_symbol["USDC"].apy == pytest.approx(6.0)
    assert by_symbol["USDC"].tvl_usd == 3_000_000
    assert by_symbol["USDT"].project == "jupiter-lend"
    assert [pool.symbol for pool in result.pools] == ["PYUSD", "USDC", "USDT"]
    assert "tool.lending.yields" in metrics_snapshot()


@pytest.mark.asyncio
async def test_partial_failure_still_answers() -> None:
    upstreams = Upstreams(failing={"api.kamino.finance", "api.defituna.com"})
    service = _service(upstreams)

    result = await service.lending_yields()
    await service.client.aclose()

    assert result.status == "ok"
    by_symbol = {pool.symbol: pool for pool in result.pools}
    assert by_symbol["USDC"].apy == pytest.approx(4.0)
    assert "PYUSD" not in by_symbol


@pytest.mark.asyncio
async def test_all_sources_failing_is_unavailable() -> None:
    upstreams = Upstreams(failing=set(PAYLOADS))
    service = _service(upstreams)

    result = await service.lending_yields()
    await service.client.aclose()

    assert result.status == "unavailable"
    assert result.message == LENDING_UNAVAILABLE
    assert result.pools is None


@pytest.mark.asyncio
async def test_staking_reuses_cached_index() -> None:
    upstreams = Upstreams()
    service = _service(upstreams)

    await service.lending_yields()
    result = await service.liquid_staking_yields({"risk": "low", "limit": 2})
    await service.client.aclose()

    assert upstreams.hits["yields.llama.fi"] == 1
    assert result.status == "ok"
    assert [pool.symbol for pool in result.pools] == ["JITOSOL", "MSOL"]


@pytest.mark.asyncio
async def test_staking_unavailable_when_index_fails() -> None:
    service = _service(Upstreams(failing={"yields.llama.fi"}))

    result = await service.liquid_staking_yields()
    await service.client.aclose()

    assert result.status == "unavailable"


@pytest.mark.asyncio
async def test_call_tool_by_namespaced_name() -> None:
    service = _service(Upstreams())

    payload = await service.call_tool("solana_lending_yields", {"tokenSymbol": "usdc"})
    await service.client.aclose()

    assert payload["body"][0]["symbol"] == "USDC"
    assert "lending pools" in payload["message"]


@pytest.mark.asyncio
async def test_unknown_tool_raises() -> None:
    service = _service(Upstreams())
    with pytest.raises(KeyError):
        await service.call_tool("solana_trade", {})
    await service.client.aclose()


@pytest.mark.asyncio
async def test_invalid_args_are_dropped_not_raised() -> None:
    service = _service(Upstreams())

    payload = await service.call_tool(
        "solana_lending_yields", {"limit": "all", "risk": "extreme"}
    )
    await service.client.aclose()

    assert {pool["symbol"] for pool in payload["body"]} == {"USDC", "USDT", "PYUSD"}


@pytest.mark.asyncio
async def test_valid_args_survive_invalid_neighbours() -> None:
    service = _service(Upstreams())

    result = await service.lending_yields({"limit": "all", "tokenSymbol": "usdt"})
    await service.client.aclose()

    assert result.status == "ok"
    assert [pool.symbol for pool in result.pools] == ["USDT"]


def test_stores_exposed_for_warmer() -> None:
    service = YieldService(Settings(_env_file=None), client=httpx.AsyncClient())
    assert [store.name for store in service.stores] == [
        "defillama",
        "kamino",
        "jupiter-lend",
        "defituna",
    ]
