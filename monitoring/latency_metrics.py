"""
Assembly latency tracking.

Each assembly reports its total wall time plus the two stages that can grow
with project size: retrieval (index search and selection) and history
compression. The collector keeps a rolling window per stage and reports
nearest-rank percentiles.
"""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Deque, Dict, Iterator, Optional, Sequence

STAGES = ("retrieval", "compression")
PERCENTILES = {"p50": 0.50, "p95": 0.95, "p99": 0.99}


@dataclass
class LatencyMetrics:
    """Timings for one assembly, in milliseconds."""

    total_ms: float
    retrieval_ms: Optional[float] = None  # None when no search ran
    compression_ms: Optional[float] = None
    model: Optional[str] = None


class Stopwatch:
    """Elapsed wall time in milliseconds, frozen once stopped."""

    def __init__(self):
        self._start = time.perf_counter()
        self._end: Optional[float] = None

    def stop(self):
        if self._end is None:
            self._end = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000


@contextmanager
def timed() -> Iterator[Stopwatch]:
    """
    Usage:
        with timed() as watch:
            run_search()
        retrieval_ms = watch.elapsed_ms
    """
    watch = Stopwatch()
    try:
        yield watch
    finally:
        watch.stop()


def nearest_rank(sorted_values: Sequence[float], q: float) -> float:
    """Value at quantile q of an ascending, non-empty sequence."""
    index = min(len(sorted_values) - 1, int(len(sorted_values) * q))
    return sorted_values[index]


class LatencyCollector:
    """
    Rolling-window latency statistics across assemblies.

    Usage:
        collector = LatencyCollector(window_size=500)
        collector.record(LatencyMetrics(total_ms=12.5, retrieval_ms=4.1))
        collector.get_percentiles("retrieval")["p95"]
    """

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size
        self._totals: Deque[float] = deque(maxlen=window_size)
        self._stages: Dict[str, Deque[float]] = {
            stage: deque(maxlen=window_size) for stage in STAGES
        }

    def record(self, metrics: LatencyMetrics):
        self._totals.append(metrics.total_ms)
        for stage in STAGES:
            value = getattr(metrics, f"{stage}_ms")
            if value is not None:
                self._stages[stage].append(value)

    def samples(self, stage: Optional[str] = None) -> int:
        """Number of recorded samples for a stage, or for totals."""
        return len(self._stages.get(stage, ())) if stage else len(self._totals)

    def get_percentiles(self, stage: Optional[str] = None) -> Dict[str, float]:
        """
        Args:
            stage: "retrieval", "compression", or None for total latency

        Returns:
            p50/p95/p99, plus mean/min/max once anything was recorded
        """
        values = sorted(self._stages.get(stage, ()) if stage else self._totals)
        if not values:
            return {name: 0.0 for name in PERCENTILES}

        stats = {name: nearest_rank(values, q) for name, q in PERCENTILES.items()}
        stats["mean"] = sum(values) / len(values)
        stats["min"] = values[0]
        stats["max"] = values[-1]
        return stats

    def get_summary(self) -> Dict:
        return {
            "count": len(self._totals),
            "total": self.get_percentiles(),
            "components": {
                stage: self.get_percentiles(stage)
                for stage, values in self._stages.items()
                if values
            },
        }

    def reset(self):
        self._totals.clear()
        for values in self._stages.values():
            values.clear()
