"""Utility package for general-purpose helpers.

Provides environment configuration and time utilities.
"""

from .env import (
    get_config_dir,
    get_config_path,
    get_credentials_path,
    get_env_bool,
    get_env_float,
    get_env_int,
)
from .time import utc_now_iso

__all__ = [
    # Environment utilities
    "get_config_dir",
    "get_config_path",
    "get_credentials_path",
    "get_env_bool",
    "get_env_float",
    "get_env_int",
    # Time utilities
    "utc_now_iso",
]
