"""Camera snapshot adapter.

A simplified rendition of the session adapter: the "login" exchanges the
stored refresh token for a bearer token, and the per-device resource is the
camera's latest snapshot image plus its health counters. The snapshot is the
primary reading; battery and wifi are best effort.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from ..constants import (
    CAMERA_SNAPSHOT_TIMEOUT,
    RING_API_BASE,
    RING_CLIENT_ID,
    RING_OAUTH_URL,
    RING_SNAPSHOT_URL,
    RING_USER_AGENT,
)
from ..errors import AuthenticationError, DeviceFetchError, SessionError
from ..storage.models import DeviceIdentity
from .session import DeviceRecord, PortalSession, ScrapedSessionAdapter, Secrets

logger = logging.getLogger(__name__)

TokenListener = Callable[[str], None]


class CameraSnapshot(BaseModel):
    """Latest snapshot of one camera."""

    id: Optional[DeviceIdentity] = None
    name: Optional[str] = None
    snapshot: Optional[str] = None  # base64 JPEG
    battery: Optional[float] = None
    wifi: Optional[float] = None
    status: str = "ok"


class RingClient:
    """Minimal client for the camera vendor's cloud API."""

    def __init__(self, adapter: "CameraSnapshotAdapter"):
        self._adapter = adapter

    async def authorize(self, session: PortalSession, refresh_token: str) -> str:
        """Exchange a refresh token for a bearer token stored on ``session``.

        Returns:
            The (possibly rotated) refresh token issued alongside the bearer
        """
        payload = {
            "client_id": RING_CLIENT_ID,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": "client",
        }
        try:
            response = await self._adapter.request(session, "POST", RING_OAUTH_URL, json=payload)
        except httpx.HTTPError as exc:
            raise SessionError("Camera token exchange failed", cause=exc) from exc

        if response.status_code != 200:
            session.authenticated = False
            raise AuthenticationError("ring", {"status": response.status_code})

        try:
            token = response.json()
        except ValueError as exc:
            raise SessionError("Camera token response was not JSON", cause=exc) from exc

        access_token = token.get("access_token") if isinstance(token, dict) else None
        if not access_token:
            raise AuthenticationError("ring", {"reason": "no access token"})

        session.headers["Authorization"] = f"Bearer {access_token}"
        session.authenticated = True
        return token.get("refresh_token") or refresh_token

    async def devices(self, session: PortalSession) -> List[DeviceRecord]:
        """Cameras and doorbells on the account, as inventory records."""
        response = await self._adapter.request(session, "GET", f"{RING_API_BASE}/ring_devices")
        response.raise_for_status()
        data = response.json()

        devices: List[DeviceRecord] = []
        for group, kind in (
            ("doorbots", "doorbell"),
            ("authorized_doorbots", "doorbell"),
            ("stickup_cams", "camera"),
        ):
            for camera in data.get(group) or []:
                devices.append(
                    {
                        "id": camera.get("id"),
                        "name": camera.get("description") or f"Camera {camera.get('id')}",
                        "type": kind,
                        "model": camera.get("kind"),
                        "batteryLevel": _number(camera.get("battery_life")),
                        "hasLight": bool(camera.get("led_status") is not None),
                        "hasSiren": bool(camera.get("siren_status")),
                        "locationName": camera.get("location_id"),
                    }
                )
        return devices

    async def snapshot(self, session: PortalSession, device_id: Any) -> bytes:
        response = await self._adapter.request(
            session, "GET", RING_SNAPSHOT_URL.format(device_id=device_id)
        )
        if response.status_code != 200 or not response.content:
            raise DeviceFetchError(device_id, details={"status": response.status_code})
        return response.content

    async def health(self, session: PortalSession, device_id: Any) -> Dict[str, Any]:
        response = await self._adapter.request(
            session, "GET", f"{RING_API_BASE}/doorbots/{device_id}/health"
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            return {}
        return data.get("device_health") or {}


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class CameraSnapshotAdapter(ScrapedSessionAdapter[CameraSnapshot]):
    """Session adapter serving cached camera snapshots."""

    provider = "ring"
    required_credentials = ("refresh_token",)

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        token_listener: Optional[TokenListener] = None,
        device_timeout: float = CAMERA_SNAPSHOT_TIMEOUT,
        **kwargs: Any,
    ) -> None:
        super().__init__(client=client, device_timeout=device_timeout, **kwargs)
        self.cloud = RingClient(self)
        self._token_listener = token_listener

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=CAMERA_SNAPSHOT_TIMEOUT,
            headers={"User-Agent": RING_USER_AGENT},
        )

    async def login(self, session: PortalSession, credentials: Secrets) -> None:
        refresh_token = credentials.get("refresh_token") or ""
        rotated = await self.cloud.authorize(session, refresh_token)
        if rotated != refresh_token and self._token_listener is not None:
            logger.info("Camera refresh token rotated")
            self._token_listener(rotated)

    async def fetch_resource(self, session: PortalSession, device: DeviceRecord) -> CameraSnapshot:
        device_id = device["id"]
        image = await self.cloud.snapshot(session, device_id)

        battery = _number(device.get("batteryLevel"))
        wifi = None
        try:
            health = await self.cloud.health(session, device_id)
            battery = _number(health.get("battery_percentage")) or battery
            wifi = _number(health.get("wifi_signal_strength"))
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug(f"Health info not available for camera {device_id}: {exc}")

        return CameraSnapshot(
            id=device_id,
            name=device.get("name"),
            snapshot=base64.b64encode(image).decode("ascii"),
            battery=battery,
            wifi=wifi,
        )

    def placeholder(self, device: DeviceRecord, error: BaseException) -> CameraSnapshot:
        return CameraSnapshot(
            id=device.get("id"),
            name=device.get("name"),
            battery=_number(device.get("batteryLevel")),
            status="Error",
        )

    def has_reading(self, result: CameraSnapshot) -> bool:
        return result.snapshot is not None

    async def list_devices(self, credentials: Secrets) -> List[DeviceRecord]:
        """Account devices through a one-off session (not cached)."""
        if not self.has_credentials(credentials):
            return []
        session = PortalSession()
        await self.login(session, credentials)
        return await self.cloud.devices(session)


def pick_camera(devices: List[DeviceRecord]) -> Optional[DeviceRecord]:
    """The doorbell among ``devices``, else the first camera."""
    for device in devices:
        if device.get("type") == "doorbell":
            return device
    return devices[0] if devices else None
