"""Wire-format parser turning a datagram into metric events.

Each line of a datagram has the form::

    <bucket>:<value>|<type>[|@<sampling>]

where ``<type>`` is ``c`` (counter), ``g`` (gauge) or ``ms`` (timer). Invalid lines
are dropped one at a time; the remaining lines of the datagram are still parsed.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

from observability.logging import DaemonLogger
from observability.metrics import MetricsSink

COUNTER = "c"
GAUGE = "g"
TIMER = "ms"
MODIFIERS = (COUNTER, GAUGE, TIMER)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1

_logger = DaemonLogger("parser")


@dataclass
class MetricEvent:
    bucket: str
    value: int
    modifier: str
    sampling: float = 1.0


def _parse_value(text: str, modifier: str) -> Optional[int]:
    if not text:
        return None
    signed = modifier == COUNTER
    digits = text
    if text[0] in "+-":
        if not signed:
            return None
        digits = text[1:]
    # int() alone would also accept whitespace, underscores and non-ASCII digits
    if not digits or not (digits.isascii() and digits.isdigit()):
        return None
    value = int(text)
    if signed:
        return value if INT64_MIN <= value <= INT64_MAX else None
    return value if value <= UINT64_MAX else None


def _parse_sampling(text: str, default: float) -> Optional[float]:
    """Return the sampling rate, ``default`` when unparsable, ``None`` when out of range."""

    try:
        rate = float(text)
    except ValueError:
        return default
    if math.isnan(rate) or rate <= 0 or rate > 1:
        return None
    return rate


def parse_line(line: str, default_sampling: float = 1.0) -> Optional[MetricEvent]:
    bucket, sep, rest = line.partition(":")
    if not sep or not bucket:
        return None
    fields = rest.split("|")
    if len(fields) < 2:
        return None
    raw_value, modifier = fields[0], fields[1]
    if modifier not in MODIFIERS:
        return None
    value = _parse_value(raw_value, modifier)
    if value is None:
        return None

    sampling: Optional[float] = default_sampling
    if len(fields) > 2:
        clause = fields[2]
        if clause.startswith("@"):
            sampling = _parse_sampling(clause[1:], default_sampling)
            if sampling is None:
                return None
    return MetricEvent(bucket=bucket, value=value, modifier=modifier, sampling=sampling)


def parse_message(
    data: bytes,
    default_sampling: float = 1.0,
    metrics: Optional[MetricsSink] = None,
) -> List[MetricEvent]:
    """Parse one datagram; never raises on malformed input."""

    events: List[MetricEvent] = []
    text = data.decode("utf-8", errors="replace")
    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line:
            continue
        event = parse_line(line, default_sampling)
        if event is None:
            _logger.debug("Dropping invalid line %r", line)
            if metrics is not None:
                metrics.increment("lines_invalid")
            continue
        events.append(event)
    return events
