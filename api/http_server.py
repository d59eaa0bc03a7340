"""Minimal HTTP status API for tallyd (health, self-metrics, live stats)."""
from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Tuple


def _json_response(handler: BaseHTTPRequestHandler, status: int, payload: dict) -> None:
    body = json.dumps(payload).encode()
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def prometheus_text(metrics) -> str:
    exported = metrics.export()
    lines = []
    for name, value in sorted(exported["counters"].items()):
        lines.append(f"tallyd_{name}_total {value}")
    for name, value in sorted(exported["gauges"].items()):
        lines.append(f"tallyd_{name} {value}")
    for name, summary in sorted(exported["timings"].items()):
        lines.append(f"tallyd_{name}_count {summary['count']}")
        lines.append(f"tallyd_{name}_mean {summary['mean']}")
        lines.append(f"tallyd_{name}_max {summary['max']}")
    return "\n".join(lines) + "\n"


class StatusRequestHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # pragma: no cover - reduce test noise
        return

    def do_GET(self) -> None:
        daemon = self.server.stats_daemon  # type: ignore[attr-defined]
        if self.path == "/health":
            report = daemon.health()
            _json_response(self, 200 if report["ok"] else 503, report)
            return
        if self.path == "/metrics":
            _json_response(self, 200, daemon.metrics.export())
            return
        if self.path == "/metrics/prom":
            payload = prometheus_text(daemon.metrics).encode()
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; version=0.0.4")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)
            return
        if self.path == "/stats":
            _json_response(self, 200, daemon.stats())
            return
        _json_response(self, 404, {"error": "not found"})


def run_server(daemon, host: str = "127.0.0.1", port: int = 0) -> Tuple[ThreadingHTTPServer, int, threading.Thread]:
    server = ThreadingHTTPServer((host, port), StatusRequestHandler)
    server.stats_daemon = daemon  # type: ignore[attr-defined]
    bound_port = server.server_address[1]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, bound_port, thread
