"""Device inventory storage with versioned schema migration.

The inventory lives in a single JSON document (``config.json``) holding one
ordered list of device records per device type plus free-form ``scenes``,
``settings`` and feature blocks. Every mutation rewrites the whole document.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import CONFIG_VERSION, DEFAULT_CONFIG, DEVICE_TYPES, VERSION_KEY
from ..errors import StorageError

logger = logging.getLogger(__name__)


def deep_merge(existing: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``defaults`` into ``existing`` without overwriting populated values.

    For every key in ``defaults``:

    - scalars are only filled in when ``existing`` lacks the key (or holds None)
    - lists are kept when non-empty, otherwise the default list is adopted
    - dicts are merged recursively
    - a populated existing value of a different shape is always kept

    Keys present only in ``existing`` pass through untouched, so fields can be
    added across schema versions but never removed or renamed.
    """
    result = dict(existing)

    for key, default in defaults.items():
        if default is None:
            continue

        current = result.get(key)

        if isinstance(default, list):
            if isinstance(current, list) and current:
                continue
            if current is not None and not isinstance(current, list):
                continue
            result[key] = copy.deepcopy(default)
        elif isinstance(default, dict):
            if current is None:
                result[key] = copy.deepcopy(default)
            elif isinstance(current, dict):
                result[key] = deep_merge(current, default)
        elif current is None:
            result[key] = default

    return result


def get_version(config: Dict[str, Any]) -> int:
    """Return the stored schema version; documents without one are version 1."""
    version = config.get(VERSION_KEY, 1)
    if isinstance(version, bool) or not isinstance(version, int):
        return 1
    return version


class ConfigStore:
    """Storage manager for the device inventory document."""

    def __init__(
        self,
        path: Path | str,
        defaults: Optional[Dict[str, Any]] = None,
        version: int = CONFIG_VERSION,
    ):
        """Initialize storage.

        Args:
            path: Location of the JSON document
            defaults: Canonical default config (schema of ``version``)
            version: Current schema version
        """
        self.path = Path(path)
        self.version = version
        self._defaults = copy.deepcopy(defaults if defaults is not None else DEFAULT_CONFIG)
        self._defaults[VERSION_KEY] = version
        self._lock = threading.RLock()

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def defaults(self) -> Dict[str, Any]:
        """Return a fresh copy of the seeded default config."""
        return copy.deepcopy(self._defaults)

    def load(self) -> Dict[str, Any]:
        """Load the inventory, seeding or migrating it as needed.

        Never raises: an unreadable or malformed document is treated like an
        absent one and the defaults are returned.
        """
        with self._lock:
            if not self.path.exists():
                logger.info(f"No config found, creating default at {self.path}")
                return self._seed()

            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error(f"Error loading config from {self.path}: {exc}")
                self._backup_unreadable()
                return self._seed()

            if not isinstance(data, dict):
                logger.error(f"Config at {self.path} is not a JSON object, ignoring it")
                self._backup_unreadable()
                return self._seed()

            return self.migrate(data)

    def save(self, config: Dict[str, Any]) -> None:
        """Replace the stored document with ``config``.

        The current schema version is stamped before writing. The write goes
        through a temporary file so readers never see a half-written document.

        Raises:
            StorageError: If the document cannot be written
        """
        with self._lock:
            config[VERSION_KEY] = self.version
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_file = self.path.with_suffix(".tmp")
                tmp_file.write_text(json.dumps(config, indent=2), encoding="utf-8")
                tmp_file.replace(self.path)
            except OSError as exc:
                logger.error(f"Error saving config to {self.path}: {exc}")
                raise StorageError(str(self.path), exc) from exc
            logger.debug(f"Saved config to {self.path}")

    def migrate(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Bring ``config`` up to the current schema version.

        Older documents are deep-merged against the defaults (existing values
        win), stamped with the new version and persisted. Up-to-date documents
        are returned as-is, so applying this twice equals applying it once.
        """
        current_version = get_version(config)
        if current_version >= self.version:
            return config

        logger.info(f"Migrating config from v{current_version} to v{self.version}...")
        migrated = deep_merge(copy.deepcopy(config), self._defaults)
        migrated[VERSION_KEY] = self.version

        try:
            self.save(migrated)
            logger.info("Config migration complete")
        except StorageError:
            logger.warning("Migrated config could not be persisted, using it in memory")

        return migrated

    def _seed(self) -> Dict[str, Any]:
        config = self.defaults()
        try:
            self.save(config)
        except StorageError:
            logger.warning("Default config could not be persisted, using it in memory")
        return self.defaults()

    def _backup_unreadable(self) -> None:
        backup = self.path.with_suffix(".corrupt")
        try:
            self.path.replace(backup)
            logger.warning(f"Moved unreadable config to {backup}")
        except OSError as exc:
            logger.error(f"Could not back up unreadable config: {exc}")


def get_devices(config: Dict[str, Any], device_type: str) -> List[Dict[str, Any]]:
    """Return the record list for ``device_type`` (empty when absent or malformed)."""
    devices = config.get(device_type)
    if not isinstance(devices, list):
        return []
    return [d for d in devices if isinstance(d, dict)]


def device_counts(config: Dict[str, Any]) -> Dict[str, int]:
    """Number of records per known device type."""
    return {device_type: len(get_devices(config, device_type)) for device_type in DEVICE_TYPES}
