import io
import json

import pytest

from flux_indexer.config import ConfigError, LoggingConfig
from flux_indexer.logsetup import bind, new_logger_from_config


def _capture(cfg):
    logger = new_logger_from_config(cfg)
    stream = io.StringIO()
    logger.handlers[0].setStream(stream)
    return logger, stream


def test_json_output_has_message_level_and_fields():
    logger, stream = _capture(LoggingConfig(level="info", format="json"))
    bind(logger, component="worker").info("started worker")
    entry = json.loads(stream.getvalue())
    assert entry["message"] == "started worker"
    assert entry["level"] == "info"
    assert entry["component"] == "worker"
    assert "time" in entry


def test_level_filters_lower_messages():
    logger, stream = _capture(LoggingConfig(level="info", format="json"))
    logger.debug("hidden")
    assert stream.getvalue() == ""
    logger.warning("shown")
    assert json.loads(stream.getvalue())["message"] == "shown"


def test_text_output():
    logger, stream = _capture(LoggingConfig(level="debug", format="text"))
    bind(logger, height=12).info("block indexed")
    line = stream.getvalue().strip()
    assert " INF block indexed" in line
    assert line.endswith("height=12")


def test_bind_merges_fields():
    logger, stream = _capture(LoggingConfig(level="debug", format="json"))
    inner = bind(bind(logger, indexer="osmosis"), component="worker")
    inner.info("msg")
    entry = json.loads(stream.getvalue())
    assert entry["indexer"] == "osmosis"
    assert entry["component"] == "worker"


def test_disabled_level_suppresses_everything():
    logger, stream = _capture(LoggingConfig(level="disabled", format="json"))
    logger.critical("nothing")
    assert stream.getvalue() == ""


def test_invalid_level_raises():
    with pytest.raises(ConfigError, match="parse log level"):
        new_logger_from_config(LoggingConfig(level="loud", format="text"))


def test_none_config_raises():
    with pytest.raises(ValueError, match="got nil config"):
        new_logger_from_config(None)