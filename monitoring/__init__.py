"""
Assembly latency monitoring.

Usage:
    from monitoring import LatencyCollector

    collector = LatencyCollector(window_size=500)
    assembler = RequestAssembler(capabilities, collector=collector)
    ...
    collector.get_summary()
"""

from .latency_metrics import LatencyCollector, LatencyMetrics, Stopwatch, timed

__all__ = ["LatencyCollector", "LatencyMetrics", "Stopwatch", "timed"]
