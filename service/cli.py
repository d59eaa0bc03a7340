"""Command line entry point for the tallyd daemon.

Usage:
    tallyd --address :8125 --graphite 127.0.0.1:2003 --flush-interval 10 --percent-threshold 90

Every flag may also be set through a ``TALLYD_*`` environment variable; flags win.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from observability.logging import configure_logging
from service.config import ConfigError, DaemonConfig
from service.daemon import StatsDaemon

VERSION = "0.3.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tallyd", description="Aggregate statsd metrics and flush them to graphite.")
    parser.add_argument("--address", help="UDP service address (default: :8125).")
    parser.add_argument("--graphite", help="Graphite service address, or - to disable (default: 127.0.0.1:2003).")
    parser.add_argument("--flush-interval", type=float, help="Seconds between flushes (default: 10).")
    parser.add_argument(
        "--persist-count-keys",
        type=int,
        help="Number of flush intervals an idle counter keeps reporting zero (default: 60).",
    )
    parser.add_argument(
        "--percent-threshold",
        action="append",
        help="Timer percentile to report, negative for lower thresholds; may be repeated.",
    )
    parser.add_argument("--default-sampling", type=float, help="Sampling rate assumed when a packet omits one.")
    parser.add_argument("--receive-counter", help="Counter name incremented once per received metric.")
    parser.add_argument("--prefix", help="Prefix prepended to every emitted metric name.")
    parser.add_argument("--postfix", help="Postfix appended to every emitted metric name.")
    parser.add_argument("--status-address", help="Bind address for the HTTP status endpoint (disabled when empty).")
    parser.add_argument("--debug", action="store_true", default=None, help="Log every emitted line.")
    parser.add_argument("--version", action="version", version=f"tallyd {VERSION}")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[DaemonConfig] = None) -> DaemonConfig:
    config = base or DaemonConfig.from_env()
    overrides = {
        "address": args.address,
        "graphite": args.graphite,
        "flush_interval": args.flush_interval,
        "persist_count_keys": args.persist_count_keys,
        "percentile_thresholds": args.percent_threshold,
        "default_sampling": args.default_sampling,
        "receive_counter": args.receive_counter,
        "prefix": args.prefix,
        "postfix": args.postfix,
        "status_address": args.status_address,
        "debug": args.debug,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config.validate()


async def run_daemon(config: DaemonConfig) -> None:
    daemon = StatsDaemon(config)
    await daemon.serve()


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigError as exc:
        parser.error(str(exc))
    configure_logging(debug=config.debug)
    try:
        asyncio.run(run_daemon(config))
    except KeyboardInterrupt:
        print("tallyd stopped.")


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
