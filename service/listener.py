"""UDP datagram source feeding raw packets into the daemon."""
from __future__ import annotations

import asyncio
from typing import Callable, Optional, Tuple

from observability.logging import DaemonLogger
from observability.metrics import MetricsSink


def parse_address(text: str, default_host: str = "0.0.0.0") -> Tuple[str, int]:
    """Split ``host:port``; accepts ``:8125`` and bracketed IPv6 ``[::1]:8125``."""

    host, sep, port_text = text.rpartition(":")
    if not sep:
        raise ValueError(f"Address must be host:port, got {text!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in address {text!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range in address {text!r}")
    return host or default_host, port


class DatagramListener(asyncio.DatagramProtocol):
    """Hands every received datagram to ``handler`` synchronously."""

    def __init__(
        self,
        handler: Callable[[bytes], object],
        logger: Optional[DaemonLogger] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.handler = handler
        self.logger = logger or DaemonLogger("listener")
        self.metrics = metrics or MetricsSink()
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport) -> None:  # type: ignore[override]
        self.transport = transport
        self.logger.info("Listening for metrics on %s", transport.get_extra_info("sockname"))

    def datagram_received(self, data: bytes, addr) -> None:
        self.metrics.increment("packets_received")
        self.metrics.increment("bytes_received", len(data))
        try:
            self.handler(data)
        except Exception:
            # a bad packet must never take down the receive loop
            self.metrics.increment("udp_errors")
            self.logger.exception("Failed to handle datagram from %s", addr)

    def error_received(self, exc: Exception) -> None:
        self.metrics.increment("udp_errors")
        self.logger.warning("UDP socket error: %s", exc)


async def start_udp_listener(
    address: str,
    handler: Callable[[bytes], object],
    logger: Optional[DaemonLogger] = None,
    metrics: Optional[MetricsSink] = None,
) -> Tuple[asyncio.DatagramTransport, DatagramListener]:
    host, port = parse_address(address)
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: DatagramListener(handler, logger=logger, metrics=metrics),
        local_addr=(host, port),
    )
    return transport, protocol
