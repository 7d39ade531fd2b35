"""Yield pool data types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class SourceKind(str, Enum):
    """How much a source is trusted when pools describe the same mint."""

    INDEX = "index"  # descriptive, possibly stale
    ONCHAIN = "onchain"  # authoritative APY/TVL
    VAULT = "vault"  # additive only


@dataclass
class YieldPool:
    """One lending or staking pool, normalised across sources.

    ``apy`` is a percentage (5.2 means 5.2 %). ``token_mint_address`` is the
    join key between sources.
    """

    symbol: str
    project: str
    apy: float
    token_mint_address: Optional[str] = None
    name: Optional[str] = None
    apy_base: Optional[float] = None
    apy_reward: Optional[float] = None
    tvl_usd: float = 0.0
    reward_tokens: List[str] = field(default_factory=list)
    underlying_tokens: List[str] = field(default_factory=list)
    pool_meta: Optional[str] = None
    url: Optional[str] = None
    chain: str = "Solana"
    predictions: Optional[Dict[str, Any]] = None
    token_data: Optional[Dict[str, Any]] = None

    @property
    def is_lp_pair(self) -> bool:
        return "-" in self.symbol or "/" in self.symbol

    def copy(self, **changes: Any) -> "YieldPool":
        return replace(self, **changes)

    def as_payload(self) -> Dict[str, Any]:
        """Tool-result shape read back by the conversation context."""
        return {
            "name": self.name or self.symbol,
            "symbol": self.symbol,
            "yield": self.apy or 0,
            "apyBase": self.apy_base or 0,
            "apyReward": self.apy_reward or 0,
            "tvlUsd": self.tvl_usd or 0,
            "project": self.project,
            "poolMeta": self.pool_meta,
            "url": self.url,
            "rewardTokens": list(self.reward_tokens),
            "underlyingTokens": list(self.underlying_tokens),
            "tokenMintAddress": self.token_mint_address,
            "predictions": self.predictions,
            "tokenData": self.token_data,
        }


@dataclass
class SourceBatch:
    """Pools returned by one source adapter."""

    source: str
    kind: SourceKind
    pools: List[YieldPool]


class YieldQuery(BaseModel):
    """Arguments accepted by the yield tools (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    token_symbol: Optional[str] = None
    protocol: Optional[str] = None
    limit: Optional[Union[int, float]] = None
    stablecoin_only: Optional[bool] = None
    risk: Optional[Literal["low", "medium", "high"]] = None
    time_horizon: Optional[Literal["short", "medium", "long"]] = None

    @field_validator("token_symbol", "protocol", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


YieldStatus = Literal["ok", "none_found", "unavailable"]


@dataclass
class YieldResult:
    """Outcome of a yield tool call.

    ``none_found`` and ``unavailable`` are distinct so callers can tell
    "nothing qualifies" apart from "upstreams are down".
    """

    status: YieldStatus
    message: str
    pools: Optional[List[YieldPool]] = None

    @classmethod
    def ok(cls, pools: List[YieldPool], message: str) -> "YieldResult":
        return cls(status="ok", message=message, pools=pools)

    @classmethod
    def none_found(cls, message: str) -> "YieldResult":
        return cls(status="none_found", message=message, pools=None)

    @classmethod
    def unavailable(cls, message: str) -> "YieldResult":
        return cls(status="unavailable", message=message, pools=None)

    def as_tool_result(self) -> Dict[str, Any]:
        body = [pool.as_payload() for pool in self.pools] if self.pools is not None else None
        return {"message": self.message, "body": body}


__all__ = [
    "SourceBatch",
    "SourceKind",
    "YieldPool",
    "YieldQuery",
    "YieldResult",
    "YieldStatus",
]
