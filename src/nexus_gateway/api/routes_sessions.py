"""Thermostat and camera routes backed by the session adapters."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from ..adapters.camera import CameraSnapshot
from ..adapters.session import AggregateResult
from ..constants import DeviceType
from ..errors import NotConfiguredError
from ..storage.config_store import get_devices
from ..storage.models import RingSettingsRequest
from .exceptions import handle_storage_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sessions"])


def _freshness_flags(result: AggregateResult) -> Dict[str, bool]:
    flags = {}
    if result.cached:
        flags["cached"] = True
    if result.stale:
        flags["stale"] = True
    return flags


# ============================================================================
# Thermostat
# ============================================================================

@router.get("/thermostat")
async def get_thermostats(request: Request) -> Dict[str, Any]:
    """
    Current thermostat readings.

    Served from cache inside the freshness window; ``stale`` marks data
    from an earlier cycle returned because the live fetch failed or could
    not run.
    """
    gateway = request.app.state.gateway
    config = gateway.load_config()
    result = await gateway.thermostats(config)

    if result.payload is None:
        if not get_devices(config, DeviceType.HONEYWELL.value):
            return {"success": True, "thermostats": [], "message": "No thermostats configured"}
        return {"success": False, "error": result.error or "Thermostat fetch failed"}

    return {
        "success": True,
        "thermostats": [reading.model_dump() for reading in result.payload],
        **_freshness_flags(result),
    }


# ============================================================================
# Camera
# ============================================================================

@router.get("/ring/snapshot")
async def get_snapshot(request: Request) -> Dict[str, Any]:
    """Latest snapshot of the doorbell (or first camera), base64 encoded."""
    result = await request.app.state.gateway.camera_snapshot()

    if result.payload is None:
        return {"success": False, "error": result.error or "Ring not configured"}

    snapshot: CameraSnapshot = result.payload[0]
    if snapshot.snapshot is None:
        return {"success": False, "error": "Snapshot unavailable"}

    return {
        "success": True,
        "snapshot": snapshot.snapshot,
        "battery": snapshot.battery,
        "wifi": snapshot.wifi,
        **_freshness_flags(result),
    }


@router.get("/ring/devices")
async def get_ring_devices(request: Request) -> Dict[str, Any]:
    gateway = request.app.state.gateway
    credentials = gateway.credentials.camera()
    if not gateway.camera.has_credentials(credentials):
        raise NotConfiguredError("ring", "Ring not configured")

    devices = await gateway.camera.list_devices(credentials)
    return {
        "success": True,
        "devices": [
            {k: d.get(k) for k in ("id", "name", "type", "batteryLevel")} for d in devices
        ],
    }


@router.get("/ring/settings")
async def get_ring_settings(request: Request) -> Dict[str, Any]:
    return {"success": True, **request.app.state.gateway.ring_settings()}


@router.post("/ring/settings")
@handle_storage_errors
async def update_ring_settings(request: Request, body: RingSettingsRequest) -> Dict[str, Any]:
    """Set the snapshot interval (clamped to 5..300 seconds)."""
    request.app.state.gateway.update_ring_settings(body.snapshotInterval)
    return {"success": True}
