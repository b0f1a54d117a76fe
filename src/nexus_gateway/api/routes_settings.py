"""
Credential and discovery routes.

Credential writes are partial (only keys present in the body change) and
invalidate every session adapter before the response is sent.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Request

from ..storage.models import CredentialsUpdate, DiscoverRequest, RescanRequest
from .exceptions import handle_storage_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


# ============================================================================
# Credentials
# ============================================================================

@router.get("/settings/credentials/status")
async def credentials_status(request: Request) -> Dict[str, Any]:
    """Which providers have credentials; never the secrets themselves."""
    return request.app.state.gateway.credentials.status()


@router.put("/settings/credentials")
@handle_storage_errors
async def update_credentials(request: Request, body: CredentialsUpdate) -> Dict[str, Any]:
    request.app.state.gateway.update_credentials(body)
    return {"success": True, "message": "Credentials updated"}


@router.post("/credentials")
@handle_storage_errors
async def save_credentials(request: Request, body: CredentialsUpdate) -> Dict[str, Any]:
    request.app.state.gateway.update_credentials(body)
    return {"success": True}


# ============================================================================
# Discovery
# ============================================================================

@router.post("/settings/rescan/{device_type}")
@handle_storage_errors
async def rescan(
    request: Request,
    device_type: str,
    save: Optional[bool] = None,
    body: Optional[RescanRequest] = Body(None),
) -> Dict[str, Any]:
    """
    Re-run discovery for one type, or ``all``.

    ``save`` (query or body, default false) merges the result into the inventory.
    """
    if save is None:
        save = body.save if body is not None else False

    gateway = request.app.state.gateway
    if device_type == "all":
        devices: Any = await gateway.discover_all(save=save)
    else:
        devices = await gateway.discover(device_type, save=save)
    return {"success": True, "devices": devices}


@router.get("/discover/{device_type}")
@handle_storage_errors
async def discover_type(request: Request, device_type: str, save: bool = True) -> List[Dict[str, Any]]:
    """Discover one type; results are merged into the inventory unless ``save=false``."""
    return await request.app.state.gateway.discover(device_type, save=save)


@router.post("/discover")
async def discover_all(request: Request, body: DiscoverRequest) -> Dict[str, Any]:
    """Discover every type with ad-hoc credentials, without saving."""
    return await request.app.state.gateway.discover_with(body)
