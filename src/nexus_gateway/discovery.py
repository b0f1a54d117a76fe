"""Per-provider device discovery.

Cloud providers (thermostats, cameras) are listed through their account.
Network devices (relays, aircraft receivers) are probed on explicit
candidate hosts: the ``settings.discoveryHosts`` list plus the addresses of
records already in the inventory. Every discoverer returns inventory-shaped
records and an empty list when it cannot run; discovery never raises.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from .adapters.camera import CameraSnapshotAdapter
from .adapters.thermostat import ThermostatAdapter
from .constants import AIRCRAFT_JSON_SUFFIX, DEVICE_TYPES, DeviceType
from .errors import GatewayError, UnknownDeviceTypeError
from .storage.config_store import get_devices
from .utils.time import utc_now_iso
from .vendors.piaware import AircraftFeed

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 1.0
PIAWARE_PORTS = (8080, 80, 8888)

DeviceRecord = Dict[str, Any]
Secrets = Dict[str, Optional[str]]

_SHELLY_TYPES = (
    (("switch", "1pm", "1l"), "switch"),
    (("dimmer",), "dimmer"),
    (("plug",), "plug"),
    (("bulb", "duo"), "bulb"),
    (("rgbw",), "rgbw"),
    (("button",), "button"),
    (("motion", "sensor"), "sensor"),
)


def detect_shelly_type(model: Optional[str]) -> str:
    """Coarse device kind from a relay model string."""
    lowered = (model or "").lower()
    for needles, kind in _SHELLY_TYPES:
        if any(needle in lowered for needle in needles):
            return kind
    return "switch"


def candidate_hosts(config: Dict[str, Any], device_type: str) -> List[str]:
    """Hosts to probe for ``device_type``, deduplicated in order."""
    hosts: List[str] = []
    settings = config.get("settings") or {}
    for host in settings.get("discoveryHosts") or []:
        if isinstance(host, str) and host and host not in hosts:
            hosts.append(host)
    for record in get_devices(config, device_type):
        ip = record.get("ip")
        if isinstance(ip, str) and ip and ip != "localhost" and ip not in hosts:
            hosts.append(ip)
    return hosts


class DeviceDiscovery:
    """Runs discovery for one provider type or all of them."""

    def __init__(
        self,
        thermostat: ThermostatAdapter,
        camera: CameraSnapshotAdapter,
        aircraft: AircraftFeed,
        client: Optional[httpx.AsyncClient] = None,
        probe_timeout: float = PROBE_TIMEOUT,
    ):
        self.thermostat = thermostat
        self.camera = camera
        self.aircraft = aircraft
        self._client = client
        self._owns_client = client is None
        self.probe_timeout = probe_timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.probe_timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _probe_json(self, url: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._get_client()
            response = await client.get(url, timeout=self.probe_timeout)
            if response.status_code != 200:
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def _probe_shelly(self, ip: str) -> Optional[DeviceRecord]:
        info = await self._probe_json(f"http://{ip}/rpc/Shelly.GetDeviceInfo")
        if info is not None:
            return {
                "ip": ip,
                "id": info.get("id"),
                "mac": info.get("mac"),
                "model": info.get("model"),
                "name": info.get("name") or info.get("id"),
                "gen": info.get("gen") or 2,
                "type": detect_shelly_type(info.get("model")),
            }

        info = await self._probe_json(f"http://{ip}/shelly")
        if info is not None:
            return {
                "ip": ip,
                "id": info.get("id"),
                "mac": info.get("mac"),
                "model": info.get("type"),
                "name": info.get("id"),
                "gen": 1,
                "type": detect_shelly_type(info.get("type")),
            }
        return None

    async def shelly(self, hosts: Sequence[str]) -> List[DeviceRecord]:
        logger.info(f"Probing {len(hosts)} host(s) for relays")
        results = await asyncio.gather(*(self._probe_shelly(ip) for ip in hosts))
        return [device for device in results if device is not None]

    async def honeywell(self, credentials: Secrets) -> List[DeviceRecord]:
        if not self.thermostat.has_credentials(credentials):
            return []
        logger.info("Discovering thermostats...")
        try:
            return await self.thermostat.discover(credentials)
        except (GatewayError, httpx.HTTPError) as exc:
            logger.error(f"Thermostat discovery error: {exc}")
            return []

    async def ring(self, credentials: Secrets) -> List[DeviceRecord]:
        if not self.camera.has_credentials(credentials):
            return []
        logger.info("Discovering cameras...")
        try:
            return await self.camera.list_devices(credentials)
        except (GatewayError, httpx.HTTPError, ValueError) as exc:
            logger.error(f"Camera discovery error: {exc}")
            return []

    async def _probe_piaware(self, ip: str) -> Optional[DeviceRecord]:
        for port in PIAWARE_PORTS:
            data = await self._probe_json(f"http://{ip}:{port}{AIRCRAFT_JSON_SUFFIX}")
            if data is not None and ("aircraft" in data or "messages" in data):
                return {"ip": ip, "port": port, "type": "piaware", "url": f"http://{ip}:{port}"}
        return None

    async def piaware(self, hosts: Sequence[str]) -> List[DeviceRecord]:
        logger.info(f"Probing {len(hosts)} host(s) for aircraft receivers")
        results = await asyncio.gather(*(self._probe_piaware(ip) for ip in hosts))
        devices = [device for device in results if device is not None]

        if self.aircraft.local_file.exists():
            devices.append(
                {
                    "ip": "localhost",
                    "port": "file",
                    "type": "piaware-local",
                    "path": str(self.aircraft.local_file),
                }
            )
        return devices

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def discover(
        self,
        device_type: str,
        config: Dict[str, Any],
        thermostat_credentials: Secrets,
        camera_credentials: Secrets,
    ) -> List[DeviceRecord]:
        """
        Discover devices of one type.

        Raises:
            UnknownDeviceTypeError: If ``device_type`` is not a known type
        """
        if device_type == DeviceType.SHELLY.value:
            return await self.shelly(candidate_hosts(config, device_type))
        if device_type == DeviceType.HONEYWELL.value:
            return await self.honeywell(thermostat_credentials)
        if device_type == DeviceType.RING.value:
            return await self.ring(camera_credentials)
        if device_type == DeviceType.PIAWARE.value:
            return await self.piaware(candidate_hosts(config, device_type))
        raise UnknownDeviceTypeError(device_type)

    async def discover_all(
        self,
        config: Dict[str, Any],
        thermostat_credentials: Secrets,
        camera_credentials: Secrets,
        types: Iterable[str] = DEVICE_TYPES,
    ) -> Dict[str, Any]:
        """All providers concurrently: ``{<type>: [...], discoveredAt}``."""
        logger.info("Starting device discovery...")
        types = list(types)
        found = await asyncio.gather(
            *(
                self.discover(t, config, thermostat_credentials, camera_credentials)
                for t in types
            )
        )
        results: Dict[str, Any] = dict(zip(types, found))
        results["discoveredAt"] = utc_now_iso()
        logger.info(
            "Discovery complete: "
            + ", ".join(f"{t}={len(results[t])}" for t in types)
        )
        return results
