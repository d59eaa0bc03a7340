"""Daemon configuration from environment variables (overridable by CLI flags)."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from aggregation.flush import Percentile, parse_percentile
from service.listener import parse_address

ENV_PREFIX = "TALLYD_"


class ConfigError(ValueError):
    """Raised when the daemon configuration is unusable."""


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DaemonConfig:
    address: str = ":8125"
    graphite: str = "127.0.0.1:2003"
    flush_interval: float = 10.0
    persist_count_keys: int = 60
    percentile_thresholds: List[str] = field(default_factory=list)
    default_sampling: float = 1.0
    receive_counter: str = ""
    prefix: str = ""
    postfix: str = ""
    status_address: str = ""
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DaemonConfig":
        env = os.environ if environ is None else environ
        config = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        try:
            if get("ADDRESS"):
                config.address = get("ADDRESS")
            if get("GRAPHITE"):
                config.graphite = get("GRAPHITE")
            if get("FLUSH_INTERVAL"):
                config.flush_interval = float(get("FLUSH_INTERVAL"))
            if get("PERSIST_COUNT_KEYS"):
                config.persist_count_keys = int(get("PERSIST_COUNT_KEYS"))
            if get("PERCENT_THRESHOLD"):
                config.percentile_thresholds = [
                    item.strip() for item in get("PERCENT_THRESHOLD").split(",") if item.strip()
                ]
            if get("DEFAULT_SAMPLING"):
                config.default_sampling = float(get("DEFAULT_SAMPLING"))
        except ValueError as exc:
            raise ConfigError(f"Invalid environment configuration: {exc}") from exc
        config.receive_counter = get("RECEIVE_COUNTER") or ""
        config.prefix = get("PREFIX") or ""
        config.postfix = get("POSTFIX") or ""
        config.status_address = get("STATUS_ADDRESS") or ""
        if get("DEBUG"):
            config.debug = _env_bool(get("DEBUG"))
        return config

    def percentiles(self) -> List[Percentile]:
        try:
            return [parse_percentile(text) for text in self.percentile_thresholds]
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def validate(self) -> "DaemonConfig":
        if not math.isfinite(self.flush_interval) or self.flush_interval <= 0:
            raise ConfigError("flush_interval must be a positive finite number")
        if self.persist_count_keys < 0:
            raise ConfigError("persist_count_keys must not be negative")
        if not 0 < self.default_sampling <= 1:
            raise ConfigError("default_sampling must be within (0, 1]")
        self.percentiles()
        addresses = [self.address]
        if self.graphite != "-":
            addresses.append(self.graphite)
        if self.status_address:
            addresses.append(self.status_address)
        for address in addresses:
            try:
                parse_address(address)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        return self

    def summary(self) -> dict:
        return {
            "address": self.address,
            "graphite": self.graphite,
            "flush_interval": self.flush_interval,
            "persist_count_keys": self.persist_count_keys,
            "percentile_thresholds": list(self.percentile_thresholds),
        }
