"""Logger construction from the logging configuration, with structured fields."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import Any, Union

from flux_indexer.config import TRACE, ConfigError, LoggingConfig, parse_log_level

logging.addLevelName(TRACE, "TRACE")

_LOGGER_NAME = "flux_indexer"

_LEVEL_NAMES = [
    (TRACE, "TRC", "trace"),
    (logging.DEBUG, "DBG", "debug"),
    (logging.INFO, "INF", "info"),
    (logging.WARNING, "WRN", "warn"),
    (logging.ERROR, "ERR", "error"),
    (logging.CRITICAL, "FTL", "fatal"),
]


def _level_names(levelno: int) -> tuple[str, str]:
    for limit, short, long in _LEVEL_NAMES:
        if levelno <= limit:
            return short, long
    return "PNC", "panic"


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds")


class _FieldsAdapter(logging.LoggerAdapter):
    """Attaches bound key/value fields to every record as ``record.fields``."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra["fields"] = {**self.extra, **extra.get("fields", {})}
        kwargs["extra"] = extra
        return msg, kwargs


Logger = Union[logging.Logger, logging.LoggerAdapter]


def bind(logger: Logger, **fields: Any) -> logging.LoggerAdapter:
    """Return a logger that adds ``fields`` to every message."""
    if isinstance(logger, _FieldsAdapter):
        return _FieldsAdapter(logger.logger, {**logger.extra, **fields})
    return _FieldsAdapter(logger, fields)


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record), _level_names(record.levelno)[0], record.getMessage()]
        parts.extend(f"{key}={value}" for key, value in _fields(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {"level": _level_names(record.levelno)[1]}
        entry.update(_fields(record))
        if record.exc_info:
            entry["error"] = str(record.exc_info[1])
        entry["time"] = _timestamp(record)
        entry["message"] = record.getMessage()
        return json.dumps(entry, default=str)


def new_logger_from_config(cfg: LoggingConfig | None) -> logging.Logger:
    """Build a logger writing to standard output in the configured format and level."""
    if cfg is None:
        raise ValueError("got nil config")
    try:
        level = parse_log_level(cfg.level)
    except ConfigError as err:
        raise ConfigError(f"parse log level: {err}") from err

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_ConsoleFormatter() if cfg.format == "text" else _JsonFormatter())

    logger = logging.Logger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger