import logging

import pytest

from observability.health import flush_health
from observability.logging import DaemonLogger, TruncatingFormatter, configure_logging
from observability.metrics import MetricsSink
from observability.tracing import TraceRecorder


def test_truncating_formatter_caps_long_messages():
    formatter = TruncatingFormatter("%(message)s", max_length=10)
    record = logging.LogRecord("tallyd", logging.DEBUG, __file__, 1, "x" * 50, None, None)
    formatted = formatter.format(record)
    assert formatted == "x" * 10 + TruncatingFormatter.MARKER

    record = logging.LogRecord("tallyd", logging.DEBUG, __file__, 1, "short", None, None)
    assert formatter.format(record) == "short"


def test_daemon_logger_prefixes_component(caplog):
    logger = DaemonLogger("parser")
    caplog.set_level(logging.INFO, logger="tallyd.parser")
    logger.info("dropped %d lines", 3)
    assert "[parser] dropped 3 lines" in caplog.text


def test_configure_logging_sets_level():
    configure_logging(debug=True)
    assert logging.getLogger("tallyd").level == logging.DEBUG
    configure_logging(debug=False)
    assert logging.getLogger("tallyd").level == logging.INFO
    assert len(logging.getLogger("tallyd").handlers) == 1


def test_metrics_sink_counters_gauges_and_timings():
    metrics = MetricsSink(max_timing_samples=3)
    metrics.increment("packets")
    metrics.increment("packets", 4)
    metrics.set_gauge("buckets", 12)
    for value in (1.0, 2.0, 3.0, 10.0):
        metrics.record_timing("flush_ms", value)

    assert metrics.snapshot() == {"packets": 5}
    assert metrics.timings["flush_ms"] == [2.0, 3.0, 10.0]
    summary = metrics.timing_summary()["flush_ms"]
    assert summary["count"] == 3
    assert summary["mean"] == pytest.approx(5.0)
    assert summary["max"] == 10.0
    assert summary["last"] == 10.0
    assert metrics.export()["gauges"] == {"buckets": 12}


def test_trace_recorder_spans():
    tracer = TraceRecorder()
    with tracer.span("drain"):
        pass
    with tracer.span("format"):
        pass
    assert [span["name"] for span in tracer.export()] == ["drain", "format"]
    assert tracer.total_ms() >= 0
    tracer.reset()
    assert tracer.export() == []


def test_flush_health_staleness():
    health = flush_health(flush_interval=10, last_flush=None, started_at=100.0)
    assert health.to_dict(now=105.0)["ok"] is True
    assert health.stale(now=125.0)
    health.last_flush = 120.0
    assert health.to_dict(now=125.0) == {"last_flush": 120.0, "seconds_since_flush": 5.0, "ok": True}
    with pytest.raises(ValueError):
        flush_health(flush_interval=0, last_flush=None, started_at=0.0)
