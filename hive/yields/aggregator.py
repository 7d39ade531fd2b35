"""Merge, filter and rank yield pools from several sources.

Everything here is synchronous and pure; fetching and caching live in
:mod:`hive.yields.service`.
"""

from __future__ import annotations

import math
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from hive.utils.logging import get_logger
from hive.yields.types import SourceBatch, SourceKind, YieldPool, YieldQuery, YieldResult

logger = get_logger(__name__)

DEFAULT_LIMIT = 3
MAX_LIMIT = 50
SOLANA_CHAIN = "Solana"

LENDING_PROTOCOLS = frozenset({"kamino-lend", "jupiter-lend", "jup-lend", "defituna"})
STABLECOINS = frozenset({"USDC", "USDT", "EURC", "FDUSD", "PYUSD", "USDS", "USDY", "USDG"})

LIQUID_STAKING_PROTOCOLS = frozenset(
    {
        "jito-liquid-staking",
        "marinade-liquid-staking",
        "drift-staked-sol",
        "binance-staked-sol",
        "bybit-staked-sol",
        "helius-staked-sol",
        "jupiter-staked-sol",
        "sanctum",
        "lido",
        "blazestake",
    }
)
LIQUID_STAKING_TOKENS = frozenset(
    {"MSOL", "JITOSOL", "BSOL", "DSOL", "BNSOL", "BBSOL", "HSOL", "JUPSOL", "INF", "STSOL", "JSOL"}
)

# Substring -> canonical staking project. Checked in order.
STAKING_PROTOCOL_ALIASES = (
    ("jito", "jito-liquid-staking"),
    ("marinade", "marinade-liquid-staking"),
    ("drift", "drift-staked-sol"),
    ("binance", "binance-staked-sol"),
    ("bybit", "bybit-staked-sol"),
    ("helius", "helius-staked-sol"),
    ("jupiter", "jupiter-staked-sol"),
    ("sanctum", "sanctum"),
    ("lido", "lido"),
    ("blaze", "blazestake"),
)

# (apy weight, tvl weight) per risk appetite.
RISK_WEIGHTS: Dict[Optional[str], tuple[float, float]] = {
    None: (1.2, 0.2),
    "low": (0.8, 0.7),
    "medium": (1.2, 0.25),
    "high": (1.6, 0.1),
}
SHORT_HORIZON_APY_BONUS = 0.4
LONG_HORIZON_TVL_BONUS = 0.25

_KIND_ORDER = {SourceKind.INDEX: 0, SourceKind.ONCHAIN: 1, SourceKind.VAULT: 2}

RankKey = Callable[[YieldPool], float]


def apy_key(pool: YieldPool) -> float:
    return pool.apy or 0.0


def clamp_query_limit(limit: Optional[float]) -> int:
    """Requested limit clamped to [1, 50]; missing or zero means 3."""
    if not limit or isinstance(limit, bool) or not math.isfinite(limit):
        return DEFAULT_LIMIT
    return max(1, min(int(limit), MAX_LIMIT))


def normalize_staking_protocol(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    normalized = "-".join(value.lower().split())
    for needle, project in STAKING_PROTOCOL_ALIASES:
        if needle in normalized:
            return project
    return normalized


def normalize_lending_protocol(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return "-".join(value.lower().split())


def is_lending_candidate(pool: YieldPool) -> bool:
    return (
        pool.chain == SOLANA_CHAIN
        and pool.project in LENDING_PROTOCOLS
        and pool.symbol.upper() in STABLECOINS
        and not pool.is_lp_pair
        and pool.apy > 0
        and bool(pool.underlying_tokens)
    )


def is_staking_candidate(pool: YieldPool) -> bool:
    return (
        pool.chain == SOLANA_CHAIN
        and (
            pool.project in LIQUID_STAKING_PROTOCOLS
            or pool.symbol.upper() in LIQUID_STAKING_TOKENS
        )
        and not pool.is_lp_pair
        and pool.apy > 0
    )


def merge_by_mint(batches: Iterable[SourceBatch]) -> List[YieldPool]:
    """Join pools from all sources on their mint address.

    Index pools go in first and keep their metadata. On-chain pools then
    replace TVL always and APY only when higher. Vault pools are only added
    for mints nobody else reported. Pools without a mint are dropped.
    """
    merged: Dict[str, YieldPool] = {}
    for batch in sorted(batches, key=lambda b: _KIND_ORDER[b.kind]):
        for pool in batch.pools:
            mint = pool.token_mint_address
            if not mint:
                logger.warning("pool_missing_mint", source=batch.source, symbol=pool.symbol)
                continue
            existing = merged.get(mint)
            if existing is None:
                merged[mint] = pool.copy()
                continue
            if batch.kind is SourceKind.ONCHAIN:
                changes = {"tvl_usd": pool.tvl_usd}
                if pool.apy > existing.apy:
                    changes["apy"] = pool.apy
                    changes["apy_base"] = pool.apy_base
                merged[mint] = existing.copy(**changes)
    return list(merged.values())


def soft_filter(
    pools: List[YieldPool], predicate: Callable[[YieldPool], bool]
) -> List[YieldPool]:
    """Apply ``predicate`` unless it would leave nothing."""
    kept = [pool for pool in pools if predicate(pool)]
    return kept or pools


def apply_query_filters(
    pools: List[YieldPool],
    query: YieldQuery,
    normalize_protocol: Callable[[Optional[str]], Optional[str]],
) -> List[YieldPool]:
    symbol = query.token_symbol.upper() if query.token_symbol else None
    protocol = normalize_protocol(query.protocol)
    if symbol:
        pools = soft_filter(pools, lambda pool: pool.symbol.upper() == symbol)
    if protocol:
        pools = soft_filter(pools, lambda pool: protocol in (pool.project or "").lower())
    return pools


def preference_scorer(query: YieldQuery) -> Optional[RankKey]:
    """Score blending APY and TVL for the user's risk/horizon, or None."""
    if not query.risk and not query.time_horizon:
        return None
    apy_weight, tvl_weight = RISK_WEIGHTS.get(query.risk, RISK_WEIGHTS[None])
    if query.time_horizon == "short":
        apy_weight += SHORT_HORIZON_APY_BONUS
    elif query.time_horizon == "long":
        tvl_weight += LONG_HORIZON_TVL_BONUS

    def score(pool: YieldPool) -> float:
        tvl_score = math.log10(max(1.0, (pool.tvl_usd or 0.0) + 1))
        return apy_weight * (pool.apy or 0.0) + tvl_weight * tvl_score

    return score


def rank(pools: Sequence[YieldPool], key: RankKey) -> List[YieldPool]:
    """Sort best first; equal scores keep their input order."""
    return sorted(pools, key=key, reverse=True)


def center_highest(pools: List[YieldPool]) -> List[YieldPool]:
    """Put the best of three ranked pools in the middle: [2nd, 1st, 3rd]."""
    if len(pools) != 3:
        return list(pools)
    highest, second, third = pools
    return [second, highest, third]


class SelectionPolicy(Protocol):
    def apply(
        self, ranked: List[YieldPool], selected: List[YieldPool], key: RankKey
    ) -> List[YieldPool]: ...


class MustIncludeProtocols:
    """Guarantee one slot for a sentinel protocol present in the ranking.

    The first configured protocol found in ``ranked`` but missing from the
    selection replaces the last selected pool (selections of three or more
    only); the selection is then re-ranked.
    """

    def __init__(self, protocols: Iterable[str] = ("jupiter-lend",)) -> None:
        self.protocols = [p.lower() for p in protocols if p]

    def apply(
        self, ranked: List[YieldPool], selected: List[YieldPool], key: RankKey
    ) -> List[YieldPool]:
        if len(selected) < 3:
            return selected
        chosen = {p.project for p in selected}
        for protocol in self.protocols:
            if protocol in chosen:
                continue
            candidate = next((p for p in ranked if p.project == protocol), None)
            if candidate is not None:
                return rank([*selected[:-1], candidate], key)
        return selected


class NoSelectionPolicy:
    def apply(
        self, ranked: List[YieldPool], selected: List[YieldPool], key: RankKey
    ) -> List[YieldPool]:
        return selected


def _select(
    candidates: List[YieldPool],
    query: YieldQuery,
    key: RankKey,
    policy: SelectionPolicy,
) -> List[YieldPool]:
    ranked = rank(candidates, key)
    selected = ranked[: clamp_query_limit(query.limit)]
    selected = policy.apply(ranked, selected, key)
    return center_highest(selected)


def aggregate_lending(
    batches: Iterable[SourceBatch],
    query: Optional[YieldQuery] = None,
    policy: Optional[SelectionPolicy] = None,
) -> YieldResult:
    """Top stablecoin lending pools across all lending sources."""
    query = query or YieldQuery()
    filtered = [
        SourceBatch(b.source, b.kind, [p for p in b.pools if is_lending_candidate(p)])
        for b in batches
    ]
    candidates = merge_by_mint(filtered)
    if not candidates:
        return YieldResult.none_found(
            "No Solana lending pools found for the target protocols "
            "(Kamino, Jupiter Lend, DefiTuna). Please try again."
        )

    candidates = apply_query_filters(candidates, query, normalize_lending_protocol)
    pools = _select(candidates, query, apy_key, policy or MustIncludeProtocols())
    logger.info(
        "lending_yields_aggregated",
        candidates=len(candidates),
        returned=len(pools),
        projects=[p.project for p in pools],
    )
    return YieldResult.ok(
        pools,
        f"Found the {len(pools)} top Solana lending pools. They are shown as cards; "
        "ask the user to select a lending pool to continue.",
    )


def aggregate_staking(
    pools: Iterable[YieldPool], query: Optional[YieldQuery] = None
) -> YieldResult:
    """Top liquid staking pools, ranked by preference score when one is given."""
    query = query or YieldQuery()
    candidates = [p for p in pools if is_staking_candidate(p)]
    if not candidates:
        return YieldResult.none_found(
            "No Solana liquid staking pools found for the target protocols "
            "(Jito, Marinade, Drift, Binance, Bybit, Helius, Jupiter, BlazeStake, "
            "Sanctum, Lido). Please try again."
        )

    candidates = apply_query_filters(
        rank(candidates, apy_key), query, normalize_staking_protocol
    )
    key = preference_scorer(query) or apy_key
    selected = _select(candidates, query, key, NoSelectionPolicy())
    logger.info(
        "staking_yields_aggregated",
        candidates=len(candidates),
        returned=len(selected),
        scored=key is not apy_key,
    )
    return YieldResult.ok(
        selected,
        "Top pools are displayed as cards. Ask the user to pick a provider card "
        "to continue staking.",
    )


__all__ = [
    "DEFAULT_LIMIT",
    "LENDING_PROTOCOLS",
    "LIQUID_STAKING_PROTOCOLS",
    "LIQUID_STAKING_TOKENS",
    "MustIncludeProtocols",
    "NoSelectionPolicy",
    "RISK_WEIGHTS",
    "STABLECOINS",
    "SelectionPolicy",
    "aggregate_lending",
    "aggregate_staking",
    "apply_query_filters",
    "apy_key",
    "center_highest",
    "clamp_query_limit",
    "is_lending_candidate",
    "is_staking_candidate",
    "merge_by_mint",
    "normalize_staking_protocol",
    "preference_scorer",
    "rank",
]
