"""Relay switch and unified device routes."""

import logging
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Request

from ..storage.models import ShellyControlRequest, StateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["shelly"])


# ============================================================================
# Relays
# ============================================================================

@router.get("/shelly/status")
async def shelly_status(request: Request) -> Dict[str, Any]:
    """Live relay state; unreachable relays report ``online: false``."""
    devices = await request.app.state.gateway.relay_status()
    return {"success": True, "devices": devices}


@router.post("/shelly/control")
async def shelly_control(request: Request, body: ShellyControlRequest) -> Dict[str, Any]:
    try:
        await request.app.state.gateway.set_relay(body.device, body.state)
    except httpx.HTTPError as e:
        return {"success": False, "error": str(e) or type(e).__name__}
    return {"success": True}


@router.post("/shelly/all")
async def shelly_all(request: Request, body: StateRequest) -> Dict[str, Any]:
    results = await request.app.state.gateway.set_all_relays(body.state)
    return {"success": True, "results": results}


@router.post("/shelly/room/{room}")
async def shelly_room(request: Request, room: str, body: StateRequest) -> Dict[str, Any]:
    gateway = request.app.state.gateway
    if not gateway.relays_in_room(room):
        return {"success": False, "error": "No devices in room"}
    results = await gateway.set_room(room, body.state)
    return {"success": True, "devices": len(results), "results": results}


# ============================================================================
# Unified devices
# ============================================================================

@router.get("/devices")
async def list_devices(request: Request) -> Dict[str, Any]:
    devices = await request.app.state.gateway.unified_devices()
    return {"success": True, "devices": devices}


@router.post("/devices/{device_id}/control")
async def control_device(request: Request, device_id: str, body: StateRequest) -> Dict[str, Any]:
    try:
        await request.app.state.gateway.set_relay(device_id, body.state)
    except httpx.HTTPError as e:
        return {"success": False, "error": str(e) or type(e).__name__}
    return {"success": True, "id": device_id, "state": body.state}


@router.post("/devices/room/{room}/control")
async def control_room(request: Request, room: str, body: StateRequest) -> Dict[str, Any]:
    results = await request.app.state.gateway.set_room(room, body.state)
    return {"success": True, "results": results}


@router.get("/rooms")
async def list_rooms(request: Request) -> Dict[str, Any]:
    return {"success": True, "rooms": request.app.state.gateway.rooms()}
