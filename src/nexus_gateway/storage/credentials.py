"""Provider credential storage.

Secrets live in their own document (``.credentials.json``), written with
owner-only permissions and never returned by the config endpoints. Each
provider falls back to an environment variable when nothing is stored.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from ..errors import StorageError
from .models import Credentials, CredentialsUpdate

logger = logging.getLogger(__name__)

CREDENTIALS_FILE_MODE = 0o600

# Stored field -> environment fallback
ENV_FALLBACKS: Dict[str, str] = {
    "honeywellEmail": "TCC_USERNAME",
    "honeywellPassword": "TCC_PASSWORD",
    "ringToken": "RING_REFRESH_TOKEN",
    "shellyAuth": "SHELLY_AUTH_KEY",
}


class CredentialStore:
    """Storage manager for provider credentials"""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._credentials = self._read()

    def _read(self) -> Credentials:
        if not self.path.exists():
            logger.info(f"No credentials file found at {self.path}")
            return Credentials()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            creds = Credentials.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.error(f"Error loading credentials: {exc}")
            return Credentials()

        logger.info(
            "Credentials loaded: honeywell=%s ring=%s shelly=%s",
            bool(creds.honeywellEmail and creds.honeywellPassword),
            bool(creds.ringToken),
            bool(creds.shellyAuth),
        )
        return creds

    @property
    def stored(self) -> Credentials:
        """Credentials as stored on disk, without environment fallbacks."""
        return self._credentials.model_copy()

    def get(self, field: str) -> Optional[str]:
        """Stored value for ``field``, else its environment fallback."""
        value = getattr(self._credentials, field, None)
        if value:
            return value
        env_name = ENV_FALLBACKS.get(field)
        if env_name:
            return os.getenv(env_name) or None
        return None

    def thermostat(self) -> Dict[str, Optional[str]]:
        return {
            "username": self.get("honeywellEmail"),
            "password": self.get("honeywellPassword"),
        }

    def camera(self) -> Dict[str, Optional[str]]:
        return {"refresh_token": self.get("ringToken")}

    def status(self) -> Dict[str, object]:
        """Presence flags per provider; never the secret values."""
        return {
            "honeywell": {
                "configured": bool(self.get("honeywellPassword")),
                "email": self.get("honeywellEmail") or "",
            },
            "ring": bool(self.get("ringToken")),
            "shelly": bool(self.get("shellyAuth")),
        }

    def replace(self, credentials: Credentials) -> Credentials:
        """Replace all stored credentials.

        Raises:
            StorageError: If the document cannot be written
        """
        with self._lock:
            self._write(credentials)
            self._credentials = credentials
        return credentials

    def update(self, update: CredentialsUpdate) -> Credentials:
        """Apply a partial update; fields absent from ``update`` are kept."""
        with self._lock:
            merged = self._credentials.model_copy(
                update=update.model_dump(exclude_unset=True)
            )
            self._write(merged)
            self._credentials = merged
        return merged

    def _write(self, credentials: Credentials) -> None:
        logger.info(f"Saving credentials to {self.path}")
        payload = json.dumps(credentials.model_dump(exclude_none=True), indent=2)
        tmp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CREDENTIALS_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_file, CREDENTIALS_FILE_MODE)
            tmp_file.replace(self.path)
        except OSError as exc:
            logger.error(f"Error saving credentials: {exc}")
            raise StorageError(str(self.path), exc) from exc
