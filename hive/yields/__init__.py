"""Yield aggregation across Solana lending and staking sources."""

from hive.yields.aggregator import (
    MustIncludeProtocols,
    SelectionPolicy,
    aggregate_lending,
    aggregate_staking,
    merge_by_mint,
)
from hive.yields.service import YieldService
from hive.yields.sources import UpstreamError
from hive.yields.types import SourceBatch, SourceKind, YieldPool, YieldQuery, YieldResult

__all__ = [
    "MustIncludeProtocols",
    "SelectionPolicy",
    "SourceBatch",
    "SourceKind",
    "UpstreamError",
    "YieldPool",
    "YieldQuery",
    "YieldResult",
    "YieldService",
    "aggregate_lending",
    "aggregate_staking",
    "merge_by_mint",
]
