"""Inventory configuration routes (config document, device records, reset)."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Request

from ..storage.models import (
    DeviceAddRequest,
    DeviceRemoveRequest,
    DevicesConfigRequest,
    DeviceUpdateRequest,
    ResetRequest,
)
from .exceptions import handle_storage_errors

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config")
async def get_config(request: Request) -> Dict[str, Any]:
    """Return the current inventory document."""
    return request.app.state.gateway.load_config()


@router.post("/config")
@handle_storage_errors
async def replace_config(request: Request, body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Replace the inventory; a ``credentials`` sub-object goes to the credential store."""
    request.app.state.gateway.replace_config(body)
    return {"success": True}


@router.get("/setup-status")
async def setup_status(request: Request) -> Dict[str, bool]:
    return request.app.state.gateway.setup_status()


@router.post("/settings/reset")
@handle_storage_errors
async def reset_config(request: Request, body: ResetRequest) -> Dict[str, Any]:
    if body.confirm != "RESET":
        return {"success": False, "error": "Confirmation required"}
    request.app.state.gateway.reset_config()
    return {"success": True, "message": "Configuration reset. Visit /setup to reconfigure."}


@router.post("/settings/device")
@handle_storage_errors
async def add_device(request: Request, body: DeviceAddRequest) -> Dict[str, Any]:
    config = request.app.state.gateway.add_device(body.type, body.device)
    return {"success": True, "config": config}


@router.put("/settings/device")
@handle_storage_errors
async def update_device(request: Request, body: DeviceUpdateRequest) -> Dict[str, Any]:
    config = request.app.state.gateway.update_device(body.type, body.id, body.updates)
    return {"success": True, "config": config}


@router.delete("/settings/device")
@handle_storage_errors
async def remove_device(request: Request, body: DeviceRemoveRequest) -> Dict[str, Any]:
    config = request.app.state.gateway.remove_device(body.type, body.id)
    return {"success": True, "config": config}


@router.delete("/devices/{device_type}/{device_id}")
@handle_storage_errors
async def delete_device(request: Request, device_type: str, device_id: str) -> Dict[str, Any]:
    """RESTful removal; 404 when no record matched."""
    request.app.state.gateway.remove_device(device_type, device_id, strict=True)
    return {"success": True}


@router.post("/devices/config")
@handle_storage_errors
async def update_device_config(request: Request, body: DevicesConfigRequest) -> Dict[str, Any]:
    """Update names, rooms and icons of existing records."""
    request.app.state.gateway.update_user_fields(body)
    return {"success": True}
