"""
Latency metrics collection and analysis.

Tracks:
- P50, P95, P99 latencies
- Per-phase latencies (scoring, merge, fusion, rerank, truncate)
- Query outcomes and semantic degradation counts
"""

import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class PhaseTimings:
    """Latency metrics for a single query."""

    phases: Dict[str, float] = field(default_factory=dict)
    total_ms: float = 0.0
    request_id: Optional[str] = None

    def as_dict(self) -> Dict[str, float]:
        timings = {f"{phase}_ms": round(ms, 3) for phase, ms in self.phases.items()}
        timings["overall_ms"] = round(self.total_ms, 3)
        return timings


class LatencyCollector:
    """
    Collect and analyze latency metrics.

    Maintains rolling windows for percentile calculations.
    """

    def __init__(self, window_size: int = 1000):
        """
        Args:
            window_size: Number of recent queries to keep for percentiles
        """
        self.window_size = window_size
        self.metrics: deque = deque(maxlen=window_size)
        self._phase_metrics: Dict[str, deque] = {}
        self._counters: Counter = Counter()
        self._lock = threading.Lock()

    def record(self, timings: PhaseTimings):
        """Record a latency measurement."""
        with self._lock:
            self.metrics.append(timings.total_ms)
            for phase, ms in timings.phases.items():
                window = self._phase_metrics.setdefault(phase, deque(maxlen=self.window_size))
                window.append(ms)
            self._counters["queries"] += 1

    def record_failure(self, code: str):
        with self._lock:
            self._counters["failed_queries"] += 1
            self._counters[f"failed.{code}"] += 1

    def record_rerank(self, judged: int, degraded: int, failure_reasons: Dict[str, int]):
        with self._lock:
            self._counters["judged_candidates"] += judged
            self._counters["degraded_candidates"] += degraded
            for reason, count in failure_reasons.items():
                self._counters[f"degraded.{reason}"] += count

    def get_percentiles(self, phase: Optional[str] = None) -> Dict[str, float]:
        """
        Get latency percentiles.

        Args:
            phase: Phase name or None for total latency

        Returns:
            Dict with p50, p95, p99 values
        """
        with self._lock:
            if phase:
                values: List[float] = list(self._phase_metrics.get(phase, []))
            else:
                values = list(self.metrics)

        if not values:
            return {"p50": 0.0, "p95": 0.0, "p99": 0.0}

        sorted_values = sorted(values)
        n = len(sorted_values)

        return {
            "p50": sorted_values[int(n * 0.50)],
            "p95": sorted_values[min(n - 1, int(n * 0.95))],
            "p99": sorted_values[min(n - 1, int(n * 0.99))],
            "mean": sum(sorted_values) / n,
            "min": sorted_values[0],
            "max": sorted_values[-1],
        }

    def get_summary(self) -> Dict:
        """Get comprehensive latency summary."""
        summary = {
            "total": self.get_percentiles(),
            "phases": {},
            "counters": {},
        }

        with self._lock:
            phases = [p for p, window in self._phase_metrics.items() if window]
            summary["counters"] = dict(self._counters)

        for phase in phases:
            summary["phases"][phase] = self.get_percentiles(phase)

        return summary

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self.metrics.clear()
            self._phase_metrics.clear()
            self._counters.clear()


# Global latency collector
_latency_collector: Optional[LatencyCollector] = None


def get_latency_collector() -> LatencyCollector:
    """Get global latency collector."""
    global _latency_collector
    if _latency_collector is None:
        _latency_collector = LatencyCollector()
    return _latency_collector
