"""Logging helpers that tag records with their component and cap echoed payloads."""
from __future__ import annotations

import logging


class TruncatingFormatter(logging.Formatter):
    """Formatter that shortens overly long messages.

    Malformed datagrams are echoed into debug logs; a single oversized packet must
    not be able to flood the log stream.
    """

    MARKER = "...[truncated]"

    def __init__(self, fmt: str | None = None, max_length: int = 512) -> None:
        super().__init__(fmt)
        self.max_length = max_length

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        message = super().format(record)
        if len(message) > self.max_length:
            message = message[: self.max_length] + self.MARKER
        return message


def configure_logging(debug: bool = False) -> None:
    root = logging.getLogger("tallyd")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(TruncatingFormatter("%(asctime)s - %(levelname)s - %(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


class DaemonLogger(logging.LoggerAdapter):
    """Logger adapter prefixing every message with the component name."""

    def __init__(self, component: str) -> None:
        logger = logging.getLogger(f"tallyd.{component}")
        super().__init__(logger, {"component": component})

    def process(self, msg, kwargs):  # type: ignore[override]
        return f"[{self.extra['component']}] {msg}", kwargs
