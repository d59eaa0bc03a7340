"""Readiness checks based on how recently the daemon flushed."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class FlushHealth:
    flush_interval: float
    last_flush: Optional[float]
    started_at: float

    def age(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        reference = self.last_flush if self.last_flush is not None else self.started_at
        return max(0.0, now - reference)

    def stale(self, now: Optional[float] = None) -> bool:
        # two missed intervals means the flush loop is stuck
        return self.age(now) > 2 * self.flush_interval

    def to_dict(self, now: Optional[float] = None) -> Dict[str, object]:
        return {
            "last_flush": self.last_flush,
            "seconds_since_flush": round(self.age(now), 3),
            "ok": not self.stale(now),
        }


def flush_health(flush_interval: float, last_flush: Optional[float], started_at: float) -> FlushHealth:
    if flush_interval <= 0:
        raise ValueError("flush_interval must be positive")
    return FlushHealth(flush_interval=flush_interval, last_flush=last_flush, started_at=started_at)
