"""
Weather Client

Latest observation and forecast periods from api.weather.gov, cached for a
few minutes per station/grid.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from ..constants import (
    WEATHER_BASE_URL,
    WEATHER_CACHE_SECONDS,
    WEATHER_DEFAULT_GRID,
    WEATHER_DEFAULT_STATION,
    WEATHER_USER_AGENT,
)

logger = logging.getLogger(__name__)


class WeatherClient:
    """Client for the National Weather Service API"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache_seconds: float = WEATHER_CACHE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._owns_client = client is None
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._cache: Dict[Tuple[str, str], Tuple[float, Dict[str, Any]]] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=WEATHER_BASE_URL,
                timeout=10.0,
                headers={"User-Agent": WEATHER_USER_AGENT},
            )
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.get(path, headers={"User-Agent": WEATHER_USER_AGENT})
        response.raise_for_status()
        return response.json()

    async def current(self, location: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Observation and forecast for ``location``.

        Args:
            location: The ``location`` config block (``station``, ``grid``)

        Returns:
            ``{success, observation, forecast}``, the previous result tagged
            ``stale`` when the service is unreachable, or ``{success: False, error}``
        """
        location = location or {}
        station = location.get("station") or WEATHER_DEFAULT_STATION
        grid = location.get("grid") or WEATHER_DEFAULT_GRID
        key = (station, grid)

        cached = self._cache.get(key)
        if cached and self._clock() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            observation = await self._get_json(f"/stations/{station}/observations/latest")
            forecast = await self._get_json(f"/gridpoints/{grid}/forecast")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Weather fetch failed for {station}: {e}")
            if cached:
                return {**cached[1], "stale": True}
            return {"success": False, "error": str(e) or type(e).__name__}

        data = {
            "success": True,
            "observation": observation.get("properties"),
            "forecast": (forecast.get("properties") or {}).get("periods") or [],
        }
        self._cache[key] = (self._clock(), data)
        return data
