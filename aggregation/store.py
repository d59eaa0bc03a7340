"""In-memory aggregation of counters, gauges and timers."""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from aggregation.parser import COUNTER, GAUGE, INT64_MAX, INT64_MIN, TIMER, MetricEvent


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero; infinities saturate."""

    if math.isinf(value):
        return INT64_MAX if value > 0 else INT64_MIN
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _saturate(total: int) -> int:
    return max(INT64_MIN, min(INT64_MAX, total))


@dataclass
class _CounterState:
    total: int = 0
    lifetime: int = 0
    active: bool = False


@dataclass
class StoreSnapshot:
    """What a single flush cycle has to report."""

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, int] = field(default_factory=dict)
    timers: Dict[str, List[int]] = field(default_factory=dict)


class AggregationStore:
    """Owns the three aggregation maps, each behind its own lock.

    Counters report per-interval totals. A counter that stays idle keeps being
    reported as ``0`` for ``persist_count_keys`` flushes and is then purged.
    """

    def __init__(self, persist_count_keys: int = 60, receive_counter: str = "") -> None:
        if persist_count_keys < 0:
            raise ValueError("persist_count_keys must not be negative")
        self.persist_count_keys = persist_count_keys
        self.receive_counter = receive_counter
        self._counters: Dict[str, _CounterState] = {}
        self._gauges: Dict[str, int] = {}
        self._timers: Dict[str, List[int]] = {}
        self._counter_lock = threading.Lock()
        self._gauge_lock = threading.Lock()
        self._timer_lock = threading.Lock()

    def apply(self, event: MetricEvent) -> None:
        if self.receive_counter:
            with self._counter_lock:
                self._add_to_counter(self.receive_counter, 1)

        if event.modifier == COUNTER:
            if event.sampling == 1:
                delta = event.value
            else:
                delta = round_half_away(event.value / event.sampling)
            with self._counter_lock:
                self._add_to_counter(event.bucket, delta)
        elif event.modifier == GAUGE:
            with self._gauge_lock:
                self._gauges[event.bucket] = event.value
        elif event.modifier == TIMER:
            with self._timer_lock:
                self._timers.setdefault(event.bucket, []).append(event.value)
        else:
            raise ValueError(f"Unknown metric modifier: {event.modifier}")

    def apply_all(self, events: Iterable[MetricEvent]) -> int:
        applied = 0
        for event in events:
            self.apply(event)
            applied += 1
        return applied

    def _add_to_counter(self, bucket: str, delta: int) -> None:
        state = self._counters.get(bucket)
        if state is None:
            state = self._counters[bucket] = _CounterState()
        state.total = _saturate(state.total + delta)
        state.active = True

    def drain_for_flush(self) -> StoreSnapshot:
        snapshot = StoreSnapshot()

        with self._counter_lock:
            for bucket in list(self._counters):
                state = self._counters[bucket]
                if state.active:
                    snapshot.counters[bucket] = state.total
                    state.total = 0
                    state.active = False
                    state.lifetime = self.persist_count_keys
                elif state.lifetime > 0:
                    snapshot.counters[bucket] = 0
                    state.lifetime -= 1
                else:
                    del self._counters[bucket]

        with self._gauge_lock:
            snapshot.gauges = dict(self._gauges)

        with self._timer_lock:
            snapshot.timers, self._timers = self._timers, {}

        return snapshot

    def counters(self) -> Dict[str, int]:
        with self._counter_lock:
            return {bucket: state.total for bucket, state in self._counters.items()}

    def gauges(self) -> Dict[str, int]:
        with self._gauge_lock:
            return dict(self._gauges)

    def timer_counts(self) -> Dict[str, int]:
        with self._timer_lock:
            return {bucket: len(samples) for bucket, samples in self._timers.items()}
