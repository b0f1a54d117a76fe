"""Tests for gateway logging configuration."""

import logging
import os
from unittest.mock import patch

import pytest

from nexus_gateway.logging_config import (
    DATE_FORMAT,
    LOG_FORMAT,
    configure_logging,
    get_log_level,
    get_logging_config,
    get_uvicorn_log_config,
)


@pytest.fixture
def restore_logging():
    """Put the gateway and uvicorn loggers back after dictConfig rewires them."""
    names = ["nexus_gateway", "uvicorn", "uvicorn.error", "uvicorn.access"]
    saved = {
        name: (logging.getLogger(name).level, list(logging.getLogger(name).handlers), logging.getLogger(name).propagate)
        for name in names
    }
    root = logging.getLogger()
    root_state = (root.level, list(root.handlers))
    yield
    for name, (level, handlers, propagate) in saved.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers[:] = handlers
        logger.propagate = propagate
    root.setLevel(root_state[0])
    root.handlers[:] = root_state[1]


def test_log_level_normalized_from_env():
    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "debug"}):
        assert get_log_level() == "DEBUG"

    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": ""}):
        assert get_log_level() == "INFO"

    with patch.dict(os.environ, {}, clear=True):
        assert get_log_level() == "INFO"


def test_gateway_and_uvicorn_follow_one_level():
    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "WARNING"}, clear=True):
        loggers = get_logging_config()["loggers"]

    assert loggers["nexus_gateway"]["level"] == "WARNING"
    assert loggers["uvicorn"]["level"] == "WARNING"
    assert loggers["uvicorn.error"]["level"] == "WARNING"
    assert loggers["nexus_gateway"]["propagate"] is False


def test_access_log_quiet_unless_verbose():
    """Dashboard polling stays out of the log unless verbose logging is on."""
    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "INFO"}, clear=True):
        assert get_logging_config()["loggers"]["uvicorn.access"]["level"] == "WARNING"

    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "INFO", "NEXUS_VERBOSE_LOGGING": "yes"}):
        assert get_logging_config()["loggers"]["uvicorn.access"]["level"] == "INFO"

    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "DEBUG", "NEXUS_VERBOSE_LOGGING": "off"}):
        assert get_logging_config()["loggers"]["uvicorn.access"]["level"] == "WARNING"


def test_access_and_app_lines_share_format():
    formatters = get_logging_config()["formatters"]

    assert formatters["default"] == formatters["access"] == {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}
    assert get_uvicorn_log_config() == get_logging_config()


def test_gateway_module_records_use_shared_format(restore_logging):
    with patch.dict(os.environ, {"NEXUS_LOG_LEVEL": "DEBUG"}, clear=True):
        configure_logging()

    gateway_logger = logging.getLogger("nexus_gateway")
    assert gateway_logger.level == logging.DEBUG
    assert logging.getLogger("nexus_gateway.adapters.session").getEffectiveLevel() == logging.DEBUG

    handler = gateway_logger.handlers[0]
    record = logging.LogRecord(
        "nexus_gateway.inventory", logging.INFO, __file__, 1, "Merged shelly inventory: 1 added, 0 updated", None, None
    )
    line = handler.format(record)

    assert "INFO  [nexus_gateway.inventory] Merged shelly inventory: 1 added, 0 updated" in line
