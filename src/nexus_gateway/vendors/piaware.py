"""
Aircraft Feed Reader

Reads dump1090/PiAware ``aircraft.json`` feeds: the local receiver file,
a remote receiver URL, or configured receiver records.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from ..constants import (
    AIRCRAFT_JSON_SUFFIX,
    LOCAL_AIRCRAFT_FILE,
    PIAWARE_DEFAULT_PORT,
    PIAWARE_TEST_TIMEOUT,
)

logger = logging.getLogger(__name__)


def aircraft_url(url: str) -> str:
    """Point a receiver base URL at its ``aircraft.json`` feed."""
    if AIRCRAFT_JSON_SUFFIX in url:
        return url
    return url.rstrip("/") + AIRCRAFT_JSON_SUFFIX


def record_url(record: Dict[str, Any]) -> Optional[str]:
    """Feed location for a receiver record (``url``, ``path`` or ``ip:port``)."""
    if record.get("url"):
        return aircraft_url(record["url"])
    if record.get("path"):
        return record["path"]
    if record.get("ip"):
        port = record.get("port") or PIAWARE_DEFAULT_PORT
        return f"http://{record['ip']}:{port}{AIRCRAFT_JSON_SUFFIX}"
    return None


class AircraftFeed:
    """Reader for ADS-B receiver feeds"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        local_file: Path | str = LOCAL_AIRCRAFT_FILE,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._owns_client = client is None
        self.local_file = Path(local_file)
        self._clock = clock

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=PIAWARE_TEST_TIMEOUT)
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def empty(self, **extra: Any) -> Dict[str, Any]:
        return {"aircraft": [], "messages": 0, "now": self._clock(), **extra}

    def read_file(self, path: Path | str) -> Optional[Dict[str, Any]]:
        path = Path(path)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable aircraft feed {path}: {e}")
            return None

    async def fetch(self, url: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._get_client()
            response = await client.get(url)
            if response.status_code != 200:
                logger.debug(f"Aircraft feed {url} answered HTTP {response.status_code}")
                return None
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Aircraft feed {url} unavailable: {e}")
            return None

    async def aircraft(
        self,
        flight_config: Dict[str, Any],
        receivers: Iterable[Dict[str, Any]] = (),
    ) -> Dict[str, Any]:
        """
        Current aircraft from the configured source.

        Args:
            flight_config: The ``flightTracking`` config block
            receivers: Configured ``piaware`` records, tried in order

        Returns:
            The feed document, or an empty feed (``disabled`` or ``error`` set
            where that explains the emptiness)
        """
        if flight_config.get("enabled") is False:
            return self.empty(disabled=True)

        source = flight_config.get("source")

        if source == "local":
            data = self.read_file(self.local_file)
            return data if data is not None else self.empty(error="Local PiAware not found")

        if source == "remote" and flight_config.get("url"):
            data = await self.fetch(aircraft_url(flight_config["url"]))
            return data if data is not None else self.empty(error="Remote PiAware connection failed")

        data = self.read_file(self.local_file)
        if data is not None:
            return data

        for record in receivers:
            location = record_url(record)
            if not location:
                continue
            if location.startswith(("http://", "https://")):
                data = await self.fetch(location)
            else:
                data = self.read_file(location)
            if data is not None:
                return data

        return self.empty()

    async def test(self, url: Optional[str]) -> Dict[str, Any]:
        """Probe a feed URL (used by the setup wizard)."""
        if not url:
            return {"success": False, "error": "No URL provided"}

        try:
            client = await self._get_client()
            response = await client.get(url, timeout=PIAWARE_TEST_TIMEOUT)
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e) or type(e).__name__}

        if response.status_code != 200:
            return {"success": False, "error": f"HTTP {response.status_code}"}

        try:
            data = response.json()
        except ValueError:
            return {"success": False, "error": "Invalid response format"}

        if isinstance(data, dict) and isinstance(data.get("aircraft"), list):
            return {"success": True, "aircraft": len(data["aircraft"])}
        return {"success": False, "error": "Invalid response format"}
