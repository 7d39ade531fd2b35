"""In-process timing metrics for tools and upstream calls."""

from __future__ import annotations

import math
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Iterator, List, Optional

MAX_SAMPLES = 200
MAX_METRIC_ENTRIES = 200


@dataclass
class _MetricEntry:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = math.inf
    max_ms: float = 0.0
    last_ms: float = 0.0
    last_updated_at: float = 0.0
    samples: Deque[float] = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES))


_metrics: Dict[str, _MetricEntry] = {}


def record_timing(name: str, duration_ms: float) -> None:
    """Record one timing sample under ``name``; invalid input is ignored."""
    if not name or duration_ms is None or not math.isfinite(duration_ms):
        return

    entry = _metrics.get(name) or _MetricEntry()
    entry.count += 1
    entry.total_ms += duration_ms
    entry.last_ms = duration_ms
    entry.last_updated_at = time.time()
    entry.min_ms = min(entry.min_ms, duration_ms)
    entry.max_ms = max(entry.max_ms, duration_ms)
    entry.samples.append(duration_ms)
    _metrics[name] = entry

    while len(_metrics) > MAX_METRIC_ENTRIES:
        del _metrics[next(iter(_metrics))]


@contextmanager
def timed(name: str) -> Iterator[None]:
    """Record the wall time of the ``with`` body, including failures."""
    started = time.perf_counter()
    try:
        yield
    finally:
        record_timing(name, (time.perf_counter() - started) * 1000)


def _percentile(values: Iterable[float], pct: float) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0.0
    index = min(len(ordered) - 1, int(math.floor(pct / 100 * len(ordered))))
    return ordered[index]


def _snapshot(entry: _MetricEntry) -> Dict[str, float]:
    avg = entry.total_ms / entry.count if entry.count else 0.0
    return {
        "count": entry.count,
        "avgMs": round(avg, 2),
        "minMs": round(entry.min_ms, 2),
        "maxMs": round(entry.max_ms, 2),
        "lastMs": round(entry.last_ms, 2),
        "p95Ms": round(_percentile(entry.samples, 95), 2),
    }


def _aggregate(entries: List[_MetricEntry]) -> Optional[_MetricEntry]:
    if not entries:
        return None
    total = _MetricEntry(samples=deque())
    for entry in entries:
        total.count += entry.count
        total.total_ms += entry.total_ms
        total.min_ms = min(total.min_ms, entry.min_ms)
        total.max_ms = max(total.max_ms, entry.max_ms)
        if entry.last_updated_at >= total.last_updated_at:
            total.last_updated_at = entry.last_updated_at
            total.last_ms = entry.last_ms
        total.samples.extend(entry.samples)
    return total


def metrics_snapshot() -> Dict[str, Dict[str, float]]:
    """Summaries per metric plus ``tool.all`` and ``tool.<group>.all`` rollups.

    Group rollups are only emitted for groups with at least two metrics.
    """
    snapshot: Dict[str, Dict[str, float]] = {}
    tool_entries: List[tuple[str, _MetricEntry]] = []

    for name, entry in _metrics.items():
        snapshot[name] = _snapshot(entry)
        if name.startswith("tool."):
            tool_entries.append((name, entry))

    if not tool_entries:
        return snapshot

    overall = _aggregate([entry for _, entry in tool_entries])
    if overall is not None and "tool.all" not in snapshot:
        snapshot["tool.all"] = _snapshot(overall)

    groups: Dict[str, List[_MetricEntry]] = {}
    for name, entry in tool_entries:
        group = name[len("tool.") :].split(".")[0]
        if group:
            groups.setdefault(group, []).append(entry)

    for group, entries in groups.items():
        key = f"tool.{group}.all"
        if len(entries) < 2 or key in snapshot:
            continue
        rollup = _aggregate(entries)
        if rollup is not None:
            snapshot[key] = _snapshot(rollup)

    return snapshot


def reset_metrics() -> None:
    _metrics.clear()


__all__ = [
    "MAX_METRIC_ENTRIES",
    "MAX_SAMPLES",
    "metrics_snapshot",
    "record_timing",
    "reset_metrics",
    "timed",
]
