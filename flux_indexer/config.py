"""Indexer configuration: loading from YAML, defaults and validation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from flux_indexer.interfaces import MAX_HEIGHT, Height

RawConfig = dict[str, Any]

TRACE = 5
PANIC = logging.CRITICAL + 1
NOLEVEL = logging.CRITICAL + 2
DISABLED = 100

_NAMED_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": PANIC,
    "": NOLEVEL,
    "disabled": DISABLED,
}
# Numeric levels as accepted on the command line, from -1 (trace) to 7 (disabled).
_NUMBERED_LEVELS = [TRACE, logging.DEBUG, logging.INFO, logging.WARNING,
                    logging.ERROR, logging.CRITICAL, PANIC, NOLEVEL, DISABLED]

_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_INTEGER = re.compile(r"[+-]?\d+")


class ConfigError(ValueError):
    """Raised when a configuration cannot be read or is invalid."""


def parse_duration(value: Any) -> timedelta:
    """Parse a duration such as ``"1s"``, ``"1h30m"`` or ``"250ms"``."""
    if isinstance(value, timedelta):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"invalid duration {value!r}: expected a string such as '1s'")
    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ConfigError(f'invalid duration "{value}"')
    total_ns = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_COMPONENT.match(text, pos)
        if match is None:
            raise ConfigError(f'invalid duration "{value}"')
        try:
            amount = Decimal(match.group(1))
        except InvalidOperation as err:
            raise ConfigError(f'invalid duration "{value}"') from err
        total_ns += amount * _UNIT_NS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=float(sign * total_ns / 1000))


def parse_log_level(text: str) -> int:
    """Turn a level name (``debug``, ``info``...) or number into a logging level."""
    named = _NAMED_LEVELS.get(text.lower())
    if named is not None:
        return named
    if not _INTEGER.fullmatch(text):
        raise ConfigError(f"Unknown Level String: '{text}', defaulting to NoLevel")
    number = int(text)
    if number > 127 or number < -128:
        raise ConfigError(f"Out-Of-Bounds Level: '{number}', defaulting to NoLevel")
    if number < -1:
        return 1
    if number > 7:
        return DISABLED
    return _NUMBERED_LEVELS[number + 1]


def _mapping(data: Any, what: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a mapping, got {type(data).__name__}")
    return data


def _string(data: dict, key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"{key} must be a string")


def _integer(data: dict, key: str, default: int | None, low: int, high: int) -> int | None:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    if not low <= value <= high:
        raise ConfigError(f"{key} out of range: {value}")
    return value


def _uint32(data: dict, key: str, default: int) -> int:
    return _integer(data, key, default, 0, 2**32 - 1)


def _duration(data: dict, key: str, default: timedelta) -> timedelta:
    value = data.get(key)
    if value is None:
        return default
    try:
        return parse_duration(value)
    except ConfigError as err:
        raise ConfigError(f"{key}: {err}") from err


def _raw_configs(data: Any, what: str) -> dict[str, RawConfig]:
    return {str(key): dict(_mapping(value, f"{what}.{key}"))
            for key, value in _mapping(data, what).items()}


@dataclass
class LoggingConfig:
    """How the indexer logs."""

    level: str = "debug"
    format: str = "text"

    @classmethod
    def from_dict(cls, data: Any) -> LoggingConfig:
        data = _mapping(data, "logging")
        defaults = cls()
        return cls(
            level=_string(data, "level", defaults.level),
            format=_string(data, "format", defaults.format),
        )

    def validate(self) -> None:
        try:
            parse_log_level(self.level)
        except ConfigError as err:
            raise ConfigError(f"invalid log_level {self.level}: {err}") from err
        if self.format not in ("json", "text"):
            raise ConfigError(
                "invalid log_format, we only support `text` and `json` "
                f"current: `{self.format}`"
            )


@dataclass
class MonitoringConfig:
    """Settings of the metrics server."""

    enabled: bool = True
    port: int = 2112

    @classmethod
    def from_dict(cls, data: Any) -> MonitoringConfig:
        data = _mapping(data, "monitoring")
        defaults = cls()
        enabled = data.get("enabled")
        if enabled is None:
            enabled = defaults.enabled
        elif not isinstance(enabled, bool):
            raise ConfigError("enabled must be a boolean")
        port = _integer(data, "port", defaults.port, -(2**15), 2**15 - 1)
        return cls(enabled=enabled, port=port)


@dataclass
class IndexerConfig:
    """Settings of a single indexer."""

    name: str = ""
    node_id: str = ""
    database_id: str = ""
    workers: int = 1
    height_queue_size: int = 100
    node_polling_interval: timedelta = timedelta(seconds=1)
    modules: list[str] = field(default_factory=list)
    override_module_config: dict[str, RawConfig] = field(default_factory=dict)
    start_height: Height | None = None
    max_attempts: int = 5
    time_before_retry: timedelta = timedelta(seconds=10)

    @classmethod
    def from_dict(cls, data: Any) -> IndexerConfig:
        data = _mapping(data, "indexer")
        defaults = cls()
        modules = data.get("modules")
        if modules is None:
            modules = []
        elif not isinstance(modules, list):
            raise ConfigError("modules must be a list")
        return cls(
            name=_string(data, "name", defaults.name),
            node_id=_string(data, "node_id", defaults.node_id),
            database_id=_string(data, "database_id", defaults.database_id),
            workers=_uint32(data, "workers", defaults.workers),
            height_queue_size=_uint32(data, "height_queue_size", defaults.height_queue_size),
            node_polling_interval=_duration(
                data, "node_polling_interval", defaults.node_polling_interval
            ),
            modules=[_string({"module": item}, "module", "") for item in modules],
            override_module_config=_raw_configs(
                data.get("override_module_config"), "override_module_config"
            ),
            start_height=_integer(data, "start_height", None, 0, MAX_HEIGHT),
            max_attempts=_uint32(data, "max_attempts", defaults.max_attempts),
            time_before_retry=_duration(data, "time_before_retry", defaults.time_before_retry),
        )

    def validate(self) -> None:
        minimum_interval = timedelta(milliseconds=10)
        if not self.name:
            raise ConfigError("indexer name can't be empty")
        if not self.node_id:
            raise ConfigError("node_id can't be empty")
        if not self.database_id:
            raise ConfigError("database_id can't be empty")
        if self.workers == 0:
            raise ConfigError("worker must be > 0")
        if self.height_queue_size == 0:
            raise ConfigError("height_queue_size must be > 0")
        if self.node_polling_interval < minimum_interval:
            raise ConfigError("node_polling_interval must be >= then 10 milliseconds")
        if self.time_before_retry < minimum_interval:
            raise ConfigError("time_before_retry must be >= then 10 milliseconds")
        if not self.modules:
            raise ConfigError("modules list can't be empty")


@dataclass
class Config:
    """The whole application configuration."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    databases: dict[str, RawConfig] = field(default_factory=dict)
    nodes: dict[str, RawConfig] = field(default_factory=dict)
    modules: dict[str, RawConfig] = field(default_factory=dict)
    indexers: list[IndexerConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        data = _mapping(data, "config")
        indexers = data.get("indexers")
        if indexers is None:
            indexers = []
        elif not isinstance(indexers, list):
            raise ConfigError("indexers must be a list")
        return cls(
            logging=LoggingConfig.from_dict(data.get("logging")),
            monitoring=MonitoringConfig.from_dict(data.get("monitoring")),
            databases=_raw_configs(data.get("databases"), "databases"),
            nodes=_raw_configs(data.get("nodes"), "nodes"),
            modules=_raw_configs(data.get("modules"), "modules"),
            indexers=[IndexerConfig.from_dict(item) for item in indexers],
        )

    def validate(self) -> None:
        try:
            self.logging.validate()
        except ConfigError as err:
            raise ConfigError(f"invalid logging config: {err}") from err
        if not self.databases:
            raise ConfigError("databases can't be empty")
        if not self.nodes:
            raise ConfigError("nodes can't be empty")
        if not self.indexers:
            raise ConfigError("indexers list can't be empty")
        names: set[str] = set()
        for indexer in self.indexers:
            indexer.validate()
            if indexer.name in names:
                raise ConfigError(f"duplicated indexer with name: {indexer.name}")
            names.add(indexer.name)

    def get_indexer_config(self, name: str) -> IndexerConfig:
        for indexer in self.indexers:
            if indexer.name == name:
                return indexer
        raise ConfigError(f"config for indexer {name} not found")


def parse_config(path: str | Path) -> Config:
    """Read and parse the YAML configuration file at ``path``."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigError(f"read config: {err}") from err
    try:
        data = yaml.safe_load(text)
        return Config.from_dict(data)
    except (yaml.YAMLError, ConfigError) as err:
        raise ConfigError(f"parse config: {err}") from err