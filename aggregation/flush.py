"""Flush engine: turns a store snapshot into Graphite plaintext lines."""
from __future__ import annotations

import io
import math
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, TextIO

from aggregation.store import AggregationStore, round_half_away
from observability.logging import DaemonLogger
from observability.metrics import MetricsSink
from observability.tracing import TraceRecorder


@dataclass(frozen=True)
class Percentile:
    value: float
    label: str

    @property
    def is_upper(self) -> bool:
        return self.value > 0


def parse_percentile(text: str) -> Percentile:
    """Parse a threshold such as ``90``, ``-75`` or ``99.9``."""

    text = text.strip()
    try:
        value = float(text)
    except ValueError:
        raise ValueError(f"Invalid percentile threshold: {text!r}") from None
    if math.isnan(value) or value == 0 or not -100 < value < 100:
        raise ValueError(f"Percentile threshold must be within (-100, 100) and non-zero: {text!r}")
    label = text.lstrip("+-").replace(".", "_")
    return Percentile(value=value, label=label)


def percentile_value(sorted_samples: Sequence[int], pct: Percentile) -> int:
    """Pick the threshold sample from an ascending sequence.

    Upper thresholds return the value at or above which ``pct`` percent of the
    samples fall; lower thresholds mirror it from the bottom of the range.
    """

    n = len(sorted_samples)
    if n == 0:
        raise ValueError("percentile of an empty sample set")
    if pct.value > 0:
        idx = round_half_away(((100 - pct.value) / 100) * n)
        position = n - idx - 1
    else:
        position = round_half_away(((100 + pct.value) / 100) * n)
    position = min(max(position, 0), n - 1)
    return sorted_samples[position]


@dataclass
class FlushResult:
    payload: str
    lines: int
    buckets: int
    timestamp: int
    trace: List[Dict[str, float | str]] = field(default_factory=list)


class FlushEngine:
    def __init__(
        self,
        store: AggregationStore,
        percentiles: Iterable[Percentile] = (),
        prefix: str = "",
        postfix: str = "",
        logger: Optional[DaemonLogger] = None,
        metrics: Optional[MetricsSink] = None,
        tracer: Optional[TraceRecorder] = None,
    ) -> None:
        self.store = store
        self.percentiles: List[Percentile] = list(percentiles)
        self.prefix = prefix
        self.postfix = postfix
        self.logger = logger or DaemonLogger("flush")
        self.metrics = metrics or MetricsSink()
        self.tracer = tracer or TraceRecorder()

    def _name(self, bucket: str, stat: str = "") -> str:
        if stat:
            return f"{self.prefix}{bucket}.{stat}{self.postfix}"
        return f"{self.prefix}{bucket}{self.postfix}"

    def process_counters(self, counters: Dict[str, int], out: TextIO, now: int) -> int:
        for bucket, total in counters.items():
            out.write(f"{self._name(bucket)} {total} {now}\n")
        return len(counters)

    def process_gauges(self, gauges: Dict[str, int], out: TextIO, now: int) -> int:
        for bucket, value in gauges.items():
            out.write(f"{self._name(bucket)} {value} {now}\n")
        return len(gauges)

    def process_timers(self, timers: Dict[str, List[int]], out: TextIO, now: int) -> int:
        """Write summary lines for every timer with samples; return the line count."""

        lines = 0
        for bucket, samples in timers.items():
            if not samples:
                continue
            ordered = sorted(samples)
            count = len(ordered)
            mean = sum(ordered) / count
            out.write(f"{self._name(bucket, 'mean')} {mean:f} {now}\n")
            out.write(f"{self._name(bucket, 'upper')} {ordered[-1]} {now}\n")
            out.write(f"{self._name(bucket, 'lower')} {ordered[0]} {now}\n")
            out.write(f"{self._name(bucket, 'count')} {count} {now}\n")
            lines += 4
            for pct in self.percentiles:
                stat = f"upper_{pct.label}" if pct.is_upper else f"lower_{pct.label}"
                out.write(f"{self._name(bucket, stat)} {percentile_value(ordered, pct)} {now}\n")
                lines += 1
        return lines

    def flush(self, now: Optional[int] = None) -> FlushResult:
        now = int(time.time()) if now is None else now
        self.tracer.reset()
        with self.tracer.span("drain"):
            snapshot = self.store.drain_for_flush()

        out = io.StringIO()
        with self.tracer.span("format"):
            lines = self.process_counters(snapshot.counters, out, now)
            lines += self.process_gauges(snapshot.gauges, out, now)
            lines += self.process_timers(snapshot.timers, out, now)
        buckets = (
            len(snapshot.counters)
            + len(snapshot.gauges)
            + sum(1 for samples in snapshot.timers.values() if samples)
        )

        self.metrics.increment("flushes")
        self.metrics.increment("flush_lines", lines)
        self.metrics.set_gauge("flush_buckets", buckets)
        self.metrics.record_timing("flush_ms", self.tracer.total_ms())
        self.logger.debug("Flushed %d lines for %d buckets at %d", lines, buckets, now)
        return FlushResult(
            payload=out.getvalue(), lines=lines, buckets=buckets, timestamp=now, trace=self.tracer.export()
        )
