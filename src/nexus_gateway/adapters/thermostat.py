"""Thermostat portal adapter.

The portal has no public API. A session is forged the way a browser would:
seed cookies with a GET of the login page, POST the login form, chase the
redirects it answers with, then scrape one control page per thermostat and
pull values out of the inline script markers.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..constants import (
    BROWSER_USER_AGENT,
    PORTAL_BASE_URL,
    PORTAL_DEVICE_PATH,
    PORTAL_LOCATIONS_PATH,
    PORTAL_LOGIN_PATH,
    PORTAL_MAX_REDIRECTS,
    PORTAL_REQUEST_TIMEOUT,
    PORTAL_TIME_OFFSET,
    UNKNOWN_MODE,
)
from ..errors import AuthenticationError, DeviceFetchError
from ..storage.models import DeviceIdentity
from .markers import MarkerParser, derive_mode, derive_status, get_parser
from .session import CyclePhase, DeviceRecord, PortalSession, ScrapedSessionAdapter, Secrets

logger = logging.getLogger(__name__)

_DEVICE_ID_FALLBACK = re.compile(r"DeviceID['\":\s]+(\d+)")


class ThermostatReading(BaseModel):
    """One thermostat as returned by ``GET /api/thermostat``."""

    id: Optional[DeviceIdentity] = None
    name: Optional[str] = None
    currentTemp: Optional[float] = Field(None, description="Displayed indoor temperature")
    targetTemp: Optional[float] = Field(None, description="Heat setpoint, else cool setpoint")
    humidity: Optional[float] = None
    outdoorTemp: Optional[float] = None
    outdoorHumidity: Optional[float] = None
    mode: str = UNKNOWN_MODE
    status: str = "Idle"


def _display_name(device: DeviceRecord) -> str:
    return device.get("name") or f"Thermostat {device.get('id')}"


class ThermostatAdapter(ScrapedSessionAdapter[ThermostatReading]):
    """Cookie-session adapter for the thermostat web portal."""

    provider = "honeywell"
    required_credentials = ("username", "password")

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = PORTAL_BASE_URL,
        parser: Optional[MarkerParser] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client=client, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.parser = parser or get_parser(self.provider)

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=PORTAL_REQUEST_TIMEOUT)

    def _browser_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/json",
            "Origin": self.base_url,
            "Referer": f"{self.base_url}{PORTAL_LOGIN_PATH}",
        }

    async def login(self, session: PortalSession, credentials: Secrets) -> None:
        session.headers.update(self._browser_headers())

        # Seed the anti-forgery and session cookies
        await self.request(session, "GET", PORTAL_LOGIN_PATH)

        form = {
            "timeOffset": str(PORTAL_TIME_OFFSET),
            "UserName": credentials.get("username") or "",
            "Password": credentials.get("password") or "",
            "RememberMe": "false",
        }
        response = await self.request(session, "POST", PORTAL_LOGIN_PATH, data=form)

        location = response.headers.get("location")
        if not location:
            # A rejected login re-renders the form instead of redirecting
            session.authenticated = False
            raise AuthenticationError(self.provider, {"status": response.status_code})

        session.phase = CyclePhase.FOLLOWING_REDIRECTS
        hops = 0
        while location and hops < PORTAL_MAX_REDIRECTS:
            response = await self.request(session, "GET", location)
            hops += 1
            location = response.headers.get("location")

        session.authenticated = True
        logger.debug(f"Portal login complete after {hops} redirect(s), cookies: {session.jar.names()}")

    async def fetch_resource(self, session: PortalSession, device: DeviceRecord) -> ThermostatReading:
        device_id = device["id"]
        response = await self.request(
            session, "GET", PORTAL_DEVICE_PATH.format(device_id=device_id)
        )
        if response.status_code != 200:
            raise DeviceFetchError(device_id, details={"status": response.status_code})

        return self.shape(device, self.parser.extract(response.text))

    def shape(self, device: DeviceRecord, data: Dict[str, Any]) -> ThermostatReading:
        """Build a reading from extracted marker fields."""
        return ThermostatReading(
            id=device.get("id"),
            name=_display_name(device),
            currentTemp=data.get("dispTemperature"),
            targetTemp=data.get("heatSetpoint") or data.get("coolSetpoint"),
            humidity=data.get("indoorHumidity"),
            outdoorTemp=data.get("outdoorTemp"),
            outdoorHumidity=data.get("outdoorHumidity"),
            mode=derive_mode(data.get("systemSwitchPosition")),
            status=derive_status(data.get("statusHeat"), data.get("statusCool")),
        )

    def placeholder(self, device: DeviceRecord, error: BaseException) -> ThermostatReading:
        return ThermostatReading(
            id=device.get("id"),
            name=_display_name(device),
            mode=UNKNOWN_MODE,
            status="Error",
        )

    def has_reading(self, result: ThermostatReading) -> bool:
        return result.currentTemp is not None

    async def discover(self, credentials: Secrets) -> List[DeviceRecord]:
        """List the account's thermostats through a one-off session.

        Runs outside the cached fetch cycle and leaves the adapter's
        generations untouched.
        """
        if not self.has_credentials(credentials):
            return []

        session = PortalSession()
        await self.login(session, credentials)
        session.phase = CyclePhase.FETCHING_RESOURCES
        response = await self.request(session, "GET", PORTAL_LOCATIONS_PATH)
        session.phase = CyclePhase.DONE
        return parse_locations(response.text)


def parse_locations(body: str) -> List[DeviceRecord]:
    """Thermostat records from the portal's location list.

    The list is normally JSON; when the portal answers with a page instead,
    device ids are scraped from it.
    """
    try:
        locations = json.loads(body)
    except (TypeError, ValueError):
        return [
            {"id": int(match), "name": f"Thermostat {match}", "type": "thermostat"}
            for match in _DEVICE_ID_FALLBACK.findall(body or "")
        ]

    devices: List[DeviceRecord] = []
    if not isinstance(locations, list):
        return devices

    for location in locations:
        if not isinstance(location, dict):
            continue
        for device in location.get("Devices") or []:
            device_id = device.get("DeviceID")
            devices.append(
                {
                    "id": device_id,
                    "name": device.get("Name") or f"Thermostat {device_id}",
                    "type": device.get("DeviceType") or "thermostat",
                    "locationId": location.get("LocationID"),
                    "locationName": location.get("LocationName"),
                }
            )
    return devices
