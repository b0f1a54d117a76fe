"""Flight tracking and weather routes (stateless vendor feeds)."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from ..constants import DeviceType
from ..storage.config_store import get_devices

router = APIRouter(prefix="/api", tags=["feeds"])


@router.get("/aircraft")
async def get_aircraft(request: Request) -> Dict[str, Any]:
    gateway = request.app.state.gateway
    config = gateway.load_config()
    flight_config = config.get("flightTracking") or {"enabled": False}
    return await gateway.aircraft.aircraft(
        flight_config, get_devices(config, DeviceType.PIAWARE.value)
    )


@router.get("/flight-tracking/status")
async def flight_tracking_status(request: Request) -> Dict[str, Any]:
    config = request.app.state.gateway.load_config()
    flight_config = config.get("flightTracking") or {}
    return {
        "enabled": bool(flight_config.get("enabled", False)),
        "source": flight_config.get("source") or "auto",
        "url": flight_config.get("url"),
        "piaware": get_devices(config, DeviceType.PIAWARE.value),
    }


@router.get("/test-piaware")
async def test_piaware(request: Request, url: Optional[str] = None) -> Dict[str, Any]:
    """Probe a receiver feed URL (setup wizard)."""
    return await request.app.state.gateway.aircraft.test(url)


@router.get("/weather")
async def get_weather(request: Request) -> Dict[str, Any]:
    gateway = request.app.state.gateway
    location = gateway.load_config().get("location") or {}
    return await gateway.weather.current(location)
