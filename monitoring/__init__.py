"""Per-phase latency and degradation metrics."""

from .latency_metrics import LatencyCollector, PhaseTimings, get_latency_collector

__all__ = ["LatencyCollector", "PhaseTimings", "get_latency_collector"]
