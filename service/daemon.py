"""High-level orchestration for the tallyd statistics daemon."""
from __future__ import annotations

import asyncio
import signal
import time
from typing import Optional

from aggregation.flush import FlushEngine, FlushResult
from aggregation.parser import parse_message
from aggregation.store import AggregationStore
from observability.health import flush_health
from observability.logging import DaemonLogger
from observability.metrics import MetricsSink
from observability.tracing import TraceRecorder
from service.config import DaemonConfig
from service.graphite import GraphiteSink
from service.listener import parse_address, start_udp_listener


class StatsDaemon:
    def __init__(
        self,
        config: DaemonConfig,
        sink=None,
        metrics: Optional[MetricsSink] = None,
        logger: Optional[DaemonLogger] = None,
    ) -> None:
        self.config = config.validate()
        self.logger = logger or DaemonLogger("daemon")
        self.metrics = metrics or MetricsSink()
        self.tracer = TraceRecorder()
        self.store = AggregationStore(
            persist_count_keys=config.persist_count_keys,
            receive_counter=config.receive_counter,
        )
        self.engine = FlushEngine(
            self.store,
            percentiles=config.percentiles(),
            prefix=config.prefix,
            postfix=config.postfix,
            metrics=self.metrics,
            tracer=self.tracer,
        )
        self.sink = sink or GraphiteSink(config.graphite, debug=config.debug, metrics=self.metrics)
        self.started_at = time.time()
        self.last_flush: Optional[float] = None
        self.last_result: Optional[FlushResult] = None
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._flush_lock = asyncio.Lock()

    def handle_datagram(self, data: bytes) -> int:
        events = parse_message(data, default_sampling=self.config.default_sampling, metrics=self.metrics)
        applied = self.store.apply_all(events)
        self.metrics.increment("events_applied", applied)
        return applied

    async def flush_once(self, now: Optional[int] = None) -> FlushResult:
        # a flush in progress is never interleaved with another one
        async with self._flush_lock:
            # drain and format off the loop so ingestion only waits on the map locks
            result = await asyncio.to_thread(self.engine.flush, now)
            if result.payload:
                started = time.monotonic()
                delivered = await self.sink.send(result.payload)
                self.metrics.record_timing("send_ms", (time.monotonic() - started) * 1000.0)
                if not delivered:
                    self.metrics.increment("flushes_failed")
            self.last_flush = time.time()
            self.last_result = result
            return result

    async def run_flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.flush_interval)
            # shield: cancellation waits for the current flush to finish writing
            await asyncio.shield(self.flush_once())

    async def serve(self, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                self.logger.debug("Signal handlers unavailable for %s", sig)

        self.transport, _protocol = await start_udp_listener(
            self.config.address, self.handle_datagram, metrics=self.metrics
        )
        http_server = None
        if self.config.status_address:
            from api.http_server import run_server

            host, port = parse_address(self.config.status_address, default_host="127.0.0.1")
            http_server, bound_port, _thread = run_server(self, host=host, port=port)
            self.logger.info("Status endpoint on http://%s:%d", host, bound_port)

        flush_task = asyncio.create_task(self.run_flush_loop())
        self.logger.info(
            "tallyd started (flush every %ss, graphite %s)", self.config.flush_interval, self.config.graphite
        )
        try:
            await stop_event.wait()
        finally:
            self.logger.info("Shutting down; flushing remaining metrics")
            self.transport.close()
            flush_task.cancel()
            try:
                await flush_task
            except asyncio.CancelledError:
                pass
            await self.flush_once()
            if http_server is not None:
                http_server.shutdown()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    pass

    def health(self) -> dict:
        report = flush_health(self.config.flush_interval, self.last_flush, self.started_at).to_dict()
        report["config"] = self.config.summary()
        report["metrics"] = self.metrics.snapshot()
        last_result = self.last_result
        if last_result is not None:
            report["last_flush_lines"] = last_result.lines
            report["trace"] = last_result.trace
        else:
            report["trace"] = []
        return report

    def stats(self) -> dict:
        return {
            "counters": self.store.counters(),
            "gauges": self.store.gauges(),
            "timers": self.store.timer_counts(),
        }
