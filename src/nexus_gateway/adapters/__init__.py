"""Session adapters for providers that need a logged-in upstream session."""

from .camera import CameraSnapshot, CameraSnapshotAdapter, RingClient, pick_camera
from .markers import (
    THERMOSTAT_PARSER,
    MarkerParser,
    derive_mode,
    derive_status,
    get_parser,
    property_marker,
    register_parser,
)
from .session import (
    AggregateResult,
    CachedResult,
    CachePolicy,
    CyclePhase,
    PortalSession,
    ResultStatus,
    ScrapedSessionAdapter,
    SessionCookieJar,
)
from .thermostat import ThermostatAdapter, ThermostatReading, parse_locations

__all__ = [
    "AggregateResult",
    "CachedResult",
    "CachePolicy",
    "CameraSnapshot",
    "CameraSnapshotAdapter",
    "CyclePhase",
    "MarkerParser",
    "PortalSession",
    "ResultStatus",
    "RingClient",
    "ScrapedSessionAdapter",
    "SessionCookieJar",
    "THERMOSTAT_PARSER",
    "ThermostatAdapter",
    "ThermostatReading",
    "derive_mode",
    "derive_status",
    "get_parser",
    "parse_locations",
    "pick_camera",
    "property_marker",
    "register_parser",
]
