"""Self-metrics for the daemon: how much it received, dropped and flushed."""
from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Dict, List


class MetricsSink:
    """Collects internal counters, gauges and timings for the status endpoint."""

    def __init__(self, max_timing_samples: int = 256) -> None:
        self.counters: Counter[str] = Counter()
        self.gauges: Dict[str, float] = {}
        self.timings: Dict[str, List[float]] = {}
        self.last_updated: Dict[str, float] = {}
        self.max_timing_samples = max_timing_samples
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] += value
            self.last_updated[name] = time.time()

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = value
            self.last_updated[name] = time.time()

    def record_timing(self, name: str, value_ms: float) -> None:
        with self._lock:
            bucket = self.timings.setdefault(name, [])
            bucket.append(value_ms)
            # keep only the most recent samples
            if len(bucket) > self.max_timing_samples:
                del bucket[: len(bucket) - self.max_timing_samples]
            self.last_updated[name] = time.time()

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.counters)

    def timing_summary(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            summary = {}
            for name, samples in self.timings.items():
                if not samples:
                    continue
                summary[name] = {
                    "count": len(samples),
                    "mean": sum(samples) / len(samples),
                    "max": max(samples),
                    "last": samples[-1],
                }
            return summary

    def export(self) -> Dict[str, object]:
        with self._lock:
            gauges = dict(self.gauges)
        return {"counters": self.snapshot(), "gauges": gauges, "timings": self.timing_summary()}
