"""Tests for in-process timing metrics."""

import pytest

from hive.utils import metrics
from hive.utils.metrics import metrics_snapshot, record_timing, reset_metrics, timed


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


def test_snapshot_summarises_samples() -> None:
    for value in (10.0, 20.0, 30.0):
        record_timing("router.intent", value)

    snapshot = metrics_snapshot()["router.intent"]

    assert snapshot["count"] == 3
    assert snapshot["avgMs"] == 20.0
    assert snapshot["minMs"] == 10.0
    assert snapshot["maxMs"] == 30.0
    assert snapshot["lastMs"] == 30.0
    assert snapshot["p95Ms"] == 30.0


def test_p95_uses_floor_index() -> None:
    for value in range(1, 21):
        record_timing("router.decision", float(value))
    assert metrics_snapshot()["router.decision"]["p95Ms"] == 20.0


def test_invalid_samples_are_ignored() -> None:
    record_timing("", 5.0)
    record_timing("router.intent", float("nan"))
    record_timing("router.intent", float("inf"))
    assert metrics_snapshot() == {}


def test_tool_rollups() -> None:
    record_timing("tool.lending.yields", 10.0)
    record_timing("tool.lending.lend", 30.0)
    record_timing("tool.market.trending-tokens", 50.0)
    record_timing("router.intent", 1.0)

    snapshot = metrics_snapshot()

    assert snapshot["tool.all"]["count"] == 3
    assert snapshot["tool.all"]["maxMs"] == 50.0
    assert snapshot["tool.lending.all"]["count"] == 2
    assert snapshot["tool.lending.all"]["avgMs"] == 20.0
    assert "tool.market.all" not in snapshot
    assert snapshot["router.intent"]["count"] == 1


def test_no_rollups_without_tool_metrics() -> None:
    record_timing("router.intent", 1.0)
    assert "tool.all" not in metrics_snapshot()


def test_oldest_metric_is_evicted() -> None:
    for index in range(metrics.MAX_METRIC_ENTRIES + 1):
        record_timing(f"metric.{index}", 1.0)

    snapshot = metrics_snapshot()

    assert len(snapshot) == metrics.MAX_METRIC_ENTRIES
    assert "metric.0" not in snapshot
    assert f"metric.{metrics.MAX_METRIC_ENTRIES}" in snapshot


def test_timed_records_failures() -> None:
    with pytest.raises(RuntimeError):
        with timed("tool.staking.yields"):
            raise RuntimeError("boom")

    assert metrics_snapshot()["tool.staking.yields"]["count"] == 1
