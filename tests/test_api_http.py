import http.client
import json

import pytest

from api.http_server import prometheus_text, run_server
from service.config import DaemonConfig
from service.daemon import StatsDaemon
from service.graphite import MemorySink


def _request(port: int, path: str):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=2)
    conn.request("GET", path)
    resp = conn.getresponse()
    data = resp.read()
    conn.close()
    text = data.decode()
    try:
        parsed = json.loads(text or "{}")
    except json.JSONDecodeError:
        parsed = text
    return resp.status, parsed


@pytest.fixture
def status_server():
    daemon = StatsDaemon(DaemonConfig(address="127.0.0.1:0", graphite="-"), sink=MemorySink())
    server, port, thread = run_server(daemon)
    yield daemon, port
    server.shutdown()
    thread.join(timeout=1.0)


def test_health_and_stats(status_server):
    daemon, port = status_server
    daemon.handle_datagram(b"hits:2|c\ntemp:7|g\nlat:1|ms\nlat:2|ms")

    status, body = _request(port, "/health")
    assert status == 200
    assert body["ok"] is True
    assert body["config"]["graphite"] == "-"

    status, body = _request(port, "/stats")
    assert status == 200
    assert body == {"counters": {"hits": 2}, "gauges": {"temp": 7}, "timers": {"lat": 2}}


def test_stale_daemon_reports_503(status_server):
    daemon, port = status_server
    daemon.started_at -= 1000
    status, body = _request(port, "/health")
    assert status == 503
    assert body["ok"] is False


def test_metrics_endpoints(status_server):
    daemon, port = status_server
    daemon.handle_datagram(b"hits:1|c\nbad")

    status, body = _request(port, "/metrics")
    assert status == 200
    assert body["counters"]["events_applied"] == 1
    assert body["counters"]["lines_invalid"] == 1

    status, text = _request(port, "/metrics/prom")
    assert status == 200
    assert "tallyd_events_applied_total 1" in text

    status, body = _request(port, "/nope")
    assert status == 404
    assert body == {"error": "not found"}


def test_prometheus_text_includes_timings():
    daemon = StatsDaemon(DaemonConfig(address="127.0.0.1:0", graphite="-"), sink=MemorySink())
    daemon.metrics.record_timing("flush_ms", 2.0)
    daemon.metrics.set_gauge("flush_buckets", 3)
    text = prometheus_text(daemon.metrics)
    assert "tallyd_flush_ms_count 1" in text
    assert "tallyd_flush_buckets 3" in text
