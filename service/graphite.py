"""Line sinks delivering flushed payloads to the backend."""
from __future__ import annotations

import asyncio
from typing import List, Optional

from observability.logging import DaemonLogger
from observability.metrics import MetricsSink
from service.listener import parse_address


class GraphiteSink:
    """Sends each flush to a Graphite plaintext listener over a fresh TCP connection.

    The address ``"-"`` disables delivery; payloads are then only logged.
    """

    def __init__(
        self,
        address: str,
        timeout: float = 5.0,
        debug: bool = False,
        logger: Optional[DaemonLogger] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.address = address
        self.timeout = timeout
        self.debug = debug
        self.logger = logger or DaemonLogger("graphite")
        self.metrics = metrics or MetricsSink()
        self.enabled = address != "-"
        self._endpoint = parse_address(address, default_host="127.0.0.1") if self.enabled else None

    async def send(self, payload: str) -> bool:
        if self.debug:
            for line in payload.splitlines():
                self.logger.debug("%s", line)
        if not self.enabled:
            return True

        host, port = self._endpoint
        try:
            _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), self.timeout)
        except (OSError, asyncio.TimeoutError) as exc:
            self.metrics.increment("graphite_errors")
            self.logger.error("Cannot connect to graphite at %s: %s", self.address, exc)
            return False
        try:
            writer.write(payload.encode())
            await asyncio.wait_for(writer.drain(), self.timeout)
        except (OSError, asyncio.TimeoutError) as exc:
            self.metrics.increment("graphite_errors")
            self.logger.error("Failed to write %d bytes to graphite: %s", len(payload), exc)
            return False
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                self.logger.debug("Error closing graphite connection: %s", exc)
        self.metrics.increment("graphite_bytes_sent", len(payload))
        return True


class MemorySink:
    """Keeps delivered payloads in memory; used for dry runs and tests."""

    def __init__(self) -> None:
        self.payloads: List[str] = []

    async def send(self, payload: str) -> bool:
        self.payloads.append(payload)
        return True

    def lines(self) -> List[str]:
        return [line for payload in self.payloads for line in payload.splitlines()]
