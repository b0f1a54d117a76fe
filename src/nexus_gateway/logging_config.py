"""Unified logging configuration for the NEXUS gateway.

This module provides a centralized logging configuration that ensures all log
entries (from both the application and uvicorn) include timestamps and follow
a consistent format.

Usage:
    At application startup:
    >>> from nexus_gateway.logging_config import configure_logging
    >>> configure_logging()

    When starting uvicorn:
    >>> from nexus_gateway.logging_config import get_uvicorn_log_config
    >>> uvicorn.run(app, log_config=get_uvicorn_log_config())

Configuration:
    - Log level: Set via NEXUS_LOG_LEVEL environment variable (default: INFO)
    - Access log: Shown at the log level only when NEXUS_VERBOSE_LOGGING is set
    - Format: "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
    - Date format: "%Y-%m-%d %H:%M:%S"
"""

import logging
import logging.config
import os
from typing import Any, Dict

from .utils.env import get_env_bool

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> str:
    """Get the log level from environment variable with fallback."""
    return (os.getenv("NEXUS_LOG_LEVEL", "INFO") or "INFO").upper()


def get_logging_config() -> Dict[str, Any]:
    """Generate a unified logging configuration dictionary.

    Access logs (every dashboard poll) are only shown in verbose mode;
    otherwise uvicorn.access is raised to WARNING.
    """
    log_level = get_log_level()

    verbose_logging = get_env_bool("NEXUS_VERBOSE_LOGGING", False)
    access_log_level = log_level if verbose_logging else "WARNING"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
            "access": {
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
            },
            "access": {
                "formatter": "access",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": access_log_level,
                "propagate": False,
            },
            "nexus_gateway": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["default"],
        },
    }


def configure_logging() -> None:
    """Configure logging for the entire application.

    This should be called once at application startup, before any other
    logging configuration or logger creation.
    """
    logging.config.dictConfig(get_logging_config())

    tz = os.getenv("TZ")
    if tz:
        logging.getLogger(__name__).info(f"Logging configured with timezone: {tz}")


def get_uvicorn_log_config() -> Dict[str, Any]:
    """Get uvicorn-specific log configuration."""
    return get_logging_config()
