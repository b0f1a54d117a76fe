"""Application constants for device types, caching and upstream endpoints.

Centralized constants shared by the storage layer, the session adapters and
the API routers.
"""

from __future__ import annotations

from enum import Enum


class DeviceType(str, Enum):
    """Device type enumeration for the inventory document."""

    SHELLY = "shelly"
    HONEYWELL = "honeywell"
    RING = "ring"
    PIAWARE = "piaware"


DEVICE_TYPES = tuple(t.value for t in DeviceType)

# ============================================================================
# Config Schema
# ============================================================================

# Increment when adding new required fields to DEFAULT_CONFIG
CONFIG_VERSION = 2
VERSION_KEY = "_version"

DEFAULT_SETTINGS = {
    "thermostatRefreshInterval": 30,
    "ringSnapshotInterval": 15,
    "serveStale": True,
    "theme": "dark",
    "temperatureUnit": "F",
}

DEFAULT_CONFIG = {
    VERSION_KEY: CONFIG_VERSION,
    "shelly": [],
    "honeywell": [],
    "ring": [],
    "piaware": [],
    "flightTracking": {"enabled": False},
    "location": {},
    # v2 additions
    "scenes": [],
    "settings": DEFAULT_SETTINGS,
}

# ============================================================================
# Freshness Windows (seconds)
# ============================================================================

THERMOSTAT_FRESHNESS_SECONDS = 30.0
SNAPSHOT_FRESHNESS_SECONDS = 15.0
SNAPSHOT_INTERVAL_MIN = 5
SNAPSHOT_INTERVAL_MAX = 300
WEATHER_CACHE_SECONDS = 300.0

# ============================================================================
# Timeouts (seconds)
# ============================================================================

DEVICE_FETCH_TIMEOUT = 2.0  # Per-device sub-fetch inside a fan-out
PORTAL_REQUEST_TIMEOUT = 15.0
CAMERA_SNAPSHOT_TIMEOUT = 20.0
PIAWARE_TEST_TIMEOUT = 5.0

# ============================================================================
# Thermostat Portal
# ============================================================================

PORTAL_BASE_URL = "https://mytotalconnectcomfort.com"
PORTAL_LOGIN_PATH = "/portal/"
PORTAL_DEVICE_PATH = "/portal/Device/Control/{device_id}"
PORTAL_LOCATIONS_PATH = "/portal/Location/GetLocationListData?page=1&filter="
PORTAL_MAX_REDIRECTS = 2
PORTAL_TIME_OFFSET = 300

# Positional lookup for systemSwitchPosition
THERMOSTAT_MODES = ("EmHeat", "Heat", "Off", "Cool", "Auto")
UNKNOWN_MODE = "Unknown"
# Status indicator values that mean the stage is running
ACTIVE_STATUS_CODES = (1, 2)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)

# ============================================================================
# Flight Tracking / Weather
# ============================================================================

LOCAL_AIRCRAFT_FILE = "/run/dump1090-fa/aircraft.json"
AIRCRAFT_JSON_SUFFIX = "/data/aircraft.json"
PIAWARE_DEFAULT_PORT = 8080

WEATHER_BASE_URL = "https://api.weather.gov"
WEATHER_DEFAULT_STATION = "KRDU"
WEATHER_DEFAULT_GRID = "RAH/73,57"
WEATHER_USER_AGENT = "NEXUS Dashboard"

# Pending events held per /api/events subscriber before new ones are dropped
EVENT_QUEUE_MAXSIZE = 100

# ============================================================================
# Camera Cloud
# ============================================================================

RING_OAUTH_URL = "https://oauth.ring.com/oauth/token"
RING_API_BASE = "https://api.ring.com/clients_api"
RING_SNAPSHOT_URL = "https://app-snaps.ring.com/snapshots/next/{device_id}"
RING_CLIENT_ID = "ring_official_android"
RING_USER_AGENT = "android:com.ringapp"
