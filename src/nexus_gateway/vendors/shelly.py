"""
Relay Switch Client

Talks to relays over their local HTTP API. Gen1 devices expose
``/relay/0``; Gen2+ devices expose JSON-RPC under ``/rpc``. No session or
cache: every call goes straight to the device.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..constants import DEVICE_FETCH_TIMEOUT

logger = logging.getLogger(__name__)


def device_gen(device: Dict[str, Any]) -> int:
    """Generation of a relay record; missing or malformed means Gen1."""
    try:
        return int(device.get("gen") or 1)
    except (TypeError, ValueError):
        return 1


def status_url(device: Dict[str, Any]) -> str:
    if device_gen(device) >= 2:
        return f"http://{device.get('ip')}/rpc/Switch.GetStatus?id=0"
    return f"http://{device.get('ip')}/relay/0"


def control_url(device: Dict[str, Any], state: bool) -> str:
    if device_gen(device) >= 2:
        return f"http://{device.get('ip')}/rpc/Switch.Set?id=0&on={'true' if state else 'false'}"
    return f"http://{device.get('ip')}/relay/0?turn={'on' if state else 'off'}"


class ShellyClient:
    """Client for local relay switches"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEVICE_FETCH_TIMEOUT,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def status(self, device: Dict[str, Any]) -> Dict[str, Any]:
        """
        Get live relay state for one device.

        Returns:
            The record plus ``on``, ``power`` and ``online``; an unreachable
            device reports ``online=False, on=False, power=0``
        """
        try:
            client = await self._get_client()
            response = await asyncio.wait_for(
                client.get(status_url(device)), timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Relay {device.get('id') or device.get('ip')} offline: {e}")
            return {**device, "on": False, "power": 0, "online": False}

        if device_gen(device) >= 2:
            on = bool(data.get("output"))
            power = data.get("apower")
        else:
            on = bool(data.get("ison"))
            power = data.get("power")

        return {**device, "on": on, "power": power or 0, "online": True}

    async def status_all(self, devices: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Concurrent status sweep, in record order."""
        return list(await asyncio.gather(*(self.status(d) for d in devices)))

    async def set_state(self, device: Dict[str, Any], state: bool) -> None:
        """
        Switch one relay.

        Raises:
            httpx.HTTPError: If the device is unreachable or rejects the call
        """
        client = await self._get_client()
        response = await client.get(control_url(device, state))
        response.raise_for_status()
        logger.info(f"Relay {device.get('id') or device.get('ip')} turned {'on' if state else 'off'}")

    async def set_many(self, devices: Iterable[Dict[str, Any]], state: bool) -> List[Dict[str, Any]]:
        """Switch several relays concurrently; one result entry per device."""

        async def _one(device: Dict[str, Any]) -> Dict[str, Any]:
            try:
                await self.set_state(device, state)
                return {"id": device.get("id"), "success": True}
            except httpx.HTTPError as e:
                logger.warning(f"Relay {device.get('id')} control failed: {e}")
                return {"id": device.get("id"), "success": False, "error": str(e) or type(e).__name__}

        return list(await asyncio.gather(*(_one(d) for d in devices)))
