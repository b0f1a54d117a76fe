"""Gateway orchestration.

Owns the two durable stores, the session adapters, the stateless vendor
clients, discovery and the event hub, and implements the operations the
API routers expose. The inventory document is re-read on every operation
so edits made through any endpoint are visible immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .adapters.camera import CameraSnapshot, CameraSnapshotAdapter, pick_camera
from .adapters.session import AggregateResult, CachePolicy, ScrapedSessionAdapter
from .adapters.thermostat import ThermostatAdapter, ThermostatReading
from .constants import (
    DEFAULT_SETTINGS,
    DEVICE_FETCH_TIMEOUT,
    DEVICE_TYPES,
    EVENT_QUEUE_MAXSIZE,
    SNAPSHOT_FRESHNESS_SECONDS,
    SNAPSHOT_INTERVAL_MAX,
    SNAPSHOT_INTERVAL_MIN,
    THERMOSTAT_FRESHNESS_SECONDS,
    DeviceType,
)
from .discovery import DeviceDiscovery
from .errors import (
    DeviceNotFoundError,
    DuplicateDeviceError,
    StorageError,
    UnknownDeviceTypeError,
)
from .inventory import USER_FIELDS, find_index, identity_key, matches, merge, remove
from .storage import (
    BroadcastRequest,
    ConfigStore,
    CredentialStore,
    Credentials,
    CredentialsUpdate,
    DevicesConfigRequest,
    DiscoverRequest,
    deep_merge,
    device_counts,
    get_devices,
    get_version,
)
from .utils import get_config_path, get_credentials_path, get_env_float, utc_now_iso
from .vendors import AircraftFeed, ShellyClient, WeatherClient

logger = logging.getLogger(__name__)

DEVICE_TIMEOUT_ENV = "NEXUS_DEVICE_TIMEOUT"

BUILTIN_SCENES: Dict[str, Dict[str, Any]] = {
    "morning": {"shelly": True},
    "bedtime": {"shelly": False},
    "movie": {"shelly": False},
    "away": {"shelly": False},
}


def clamp_snapshot_interval(value: Any) -> int:
    """Snapshot interval in whole seconds, clamped to the allowed range."""
    seconds = int(value)
    return max(SNAPSHOT_INTERVAL_MIN, min(SNAPSHOT_INTERVAL_MAX, seconds))


def _interval(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    return seconds if seconds > 0 else default


class EventHub:
    """Fan-out of broadcast events to connected subscribers.

    Each subscriber gets a bounded queue; a subscriber that stops reading
    misses new events once its queue is full.
    """

    def __init__(self, maxsize: int = EVENT_QUEUE_MAXSIZE) -> None:
        self._subscribers: Set[asyncio.Queue] = set()
        self.maxsize = maxsize

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every subscriber; returns how many received it."""
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event subscriber queue full, dropping event {event.get('id')}")
                continue
            delivered += 1
        return delivered


class Gateway:
    """Aggregation gateway: inventory, credentials and provider access."""

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        credential_store: Optional[CredentialStore] = None,
        thermostat: Optional[ThermostatAdapter] = None,
        camera: Optional[CameraSnapshotAdapter] = None,
        shelly: Optional[ShellyClient] = None,
        aircraft: Optional[AircraftFeed] = None,
        weather: Optional[WeatherClient] = None,
        discovery: Optional[DeviceDiscovery] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        device_timeout = get_env_float(DEVICE_TIMEOUT_ENV, DEVICE_FETCH_TIMEOUT)

        self.config_store = config_store or ConfigStore(get_config_path())
        self.credentials = credential_store or CredentialStore(get_credentials_path())
        self.thermostat = thermostat or ThermostatAdapter(device_timeout=device_timeout)
        self.camera = camera or CameraSnapshotAdapter(token_listener=self._store_rotated_token)
        self.shelly = shelly or ShellyClient(timeout=device_timeout)
        self.aircraft = aircraft or AircraftFeed()
        self.weather = weather or WeatherClient()
        self.discovery = discovery or DeviceDiscovery(self.thermostat, self.camera, self.aircraft)
        self.events = EventHub()
        self._clock = clock
        self.started_at = clock()

    @property
    def adapters(self) -> Tuple[ScrapedSessionAdapter, ...]:
        return (self.thermostat, self.camera)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        config = self.load_config()
        counts = device_counts(config)
        logger.info(
            "Gateway start: config v%d, devices %s",
            get_version(config),
            ", ".join(f"{t}={n}" for t, n in counts.items()),
        )
        logger.info("Credentials: %s", self.credentials.status())

    async def stop(self) -> None:
        for closeable in (
            self.thermostat,
            self.camera,
            self.shelly,
            self.aircraft,
            self.weather,
            self.discovery,
        ):
            await closeable.close()
        logger.info("Gateway stopped")

    def uptime(self) -> float:
        return self._clock() - self.started_at

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def load_config(self) -> Dict[str, Any]:
        return self.config_store.load()

    def _require_type(self, device_type: str) -> None:
        if device_type not in DEVICE_TYPES:
            raise UnknownDeviceTypeError(device_type)

    def replace_config(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the inventory document.

        A ``credentials`` sub-object is split off into the credential store
        (and invalidates every session) instead of being written to the
        inventory.
        """
        body = dict(body)
        credentials = body.pop("credentials", None)
        if isinstance(credentials, dict):
            self.replace_credentials(Credentials.model_validate(credentials))

        config = deep_merge(body, self.config_store.defaults())
        self.config_store.save(config)
        return config

    def add_device(self, device_type: str, device: Dict[str, Any]) -> Dict[str, Any]:
        self._require_type(device_type)
        config = self.load_config()
        records = get_devices(config, device_type)

        key = identity_key(device)
        if key is not None and find_index(records, key) >= 0:
            raise DuplicateDeviceError(key)

        records.append(dict(device))
        config[device_type] = records
        self.config_store.save(config)
        logger.info(f"Added {device_type} device {key}")
        return config

    def update_device(
        self, device_type: str, identity: Any, updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        self._require_type(device_type)
        config = self.load_config()
        records = get_devices(config, device_type)

        index = find_index(records, identity)
        if index < 0:
            raise DeviceNotFoundError(identity, {"type": device_type})

        updated = {**records[index], **updates}
        key = identity_key(updated)
        if key is not None:
            others = records[:index] + records[index + 1 :]
            if find_index(others, key) >= 0:
                raise DuplicateDeviceError(key)

        records[index] = updated
        config[device_type] = records
        self.config_store.save(config)
        logger.info(f"Updated {device_type} device {identity}")
        return config

    def remove_device(self, device_type: str, identity: Any, strict: bool = False) -> Dict[str, Any]:
        """Remove every record named by ``identity``.

        Raises:
            UnknownDeviceTypeError: For an unknown type
            DeviceNotFoundError: With ``strict`` when nothing matched
        """
        self._require_type(device_type)
        config = self.load_config()
        records = get_devices(config, device_type)
        remaining = remove(records, identity)

        if len(remaining) == len(records):
            if strict:
                raise DeviceNotFoundError(identity, {"type": device_type})
            return config

        config[device_type] = remaining
        self.config_store.save(config)
        logger.info(f"Removed {device_type} device {identity}")
        return config

    def update_user_fields(self, request: DevicesConfigRequest) -> Dict[str, Any]:
        """Apply names/rooms/icons to existing records; empty values are ignored."""
        config = self.load_config()
        allowed = {
            DeviceType.SHELLY.value: USER_FIELDS,
            DeviceType.HONEYWELL.value: frozenset({"name"}),
        }

        for device_type, fields in allowed.items():
            updates = getattr(request, device_type)
            if not updates:
                continue
            records = get_devices(config, device_type)
            for index, record in enumerate(records):
                update = next(
                    (
                        u
                        for u in updates
                        if matches(record, u.get("id")) or matches(record, u.get("ip"))
                    ),
                    None,
                )
                if update is None:
                    continue
                records[index] = {
                    **record,
                    **{f: update[f] for f in fields if update.get(f)},
                }
            config[device_type] = records

        self.config_store.save(config)
        return config

    def reset_config(self) -> Dict[str, Any]:
        """Write the default inventory; stored credentials are untouched."""
        config = self.config_store.defaults()
        self.config_store.save(config)
        logger.warning("Configuration reset to defaults")
        return config

    def setup_status(self) -> Dict[str, bool]:
        config_exists = self.config_store.exists
        config = self.load_config()
        empty = all(
            not get_devices(config, t)
            for t in (DeviceType.SHELLY.value, DeviceType.HONEYWELL.value, DeviceType.RING.value)
        )
        return {"needsSetup": not config_exists or empty, "configExists": config_exists}

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def invalidate_sessions(self) -> None:
        for adapter in self.adapters:
            adapter.invalidate()

    def update_credentials(self, update: CredentialsUpdate) -> Credentials:
        """Partial credential update followed by immediate session invalidation."""
        credentials = self.credentials.update(update)
        self.invalidate_sessions()
        return credentials

    def replace_credentials(self, credentials: Credentials) -> Credentials:
        stored = self.credentials.replace(credentials)
        self.invalidate_sessions()
        return stored

    def _store_rotated_token(self, token: str) -> None:
        # Same identity, new token: persist without invalidating the session
        try:
            self.credentials.update(CredentialsUpdate(ringToken=token))
        except StorageError as exc:
            logger.warning(f"Rotated camera token could not be saved: {exc}")

    # ------------------------------------------------------------------
    # Session adapters
    # ------------------------------------------------------------------

    def apply_policies(self, config: Dict[str, Any]) -> None:
        """Refresh adapter freshness windows and stale policy from settings."""
        settings = {**DEFAULT_SETTINGS, **(config.get("settings") or {})}
        serve_stale = bool(settings.get("serveStale", True))

        self.thermostat.policy = CachePolicy(
            _interval(settings.get("thermostatRefreshInterval"), THERMOSTAT_FRESHNESS_SECONDS),
            serve_stale,
        )
        try:
            snapshot_interval: float = clamp_snapshot_interval(settings.get("ringSnapshotInterval"))
        except (TypeError, ValueError):
            snapshot_interval = SNAPSHOT_FRESHNESS_SECONDS
        self.camera.policy = CachePolicy(snapshot_interval, serve_stale)

    async def thermostats(
        self, config: Optional[Dict[str, Any]] = None
    ) -> AggregateResult[ThermostatReading]:
        config = config if config is not None else self.load_config()
        self.apply_policies(config)
        devices = get_devices(config, DeviceType.HONEYWELL.value)
        return await self.thermostat.fetch_all(devices, self.credentials.thermostat())

    async def camera_snapshot(
        self, config: Optional[Dict[str, Any]] = None
    ) -> AggregateResult[CameraSnapshot]:
        config = config if config is not None else self.load_config()
        self.apply_policies(config)
        target = pick_camera(get_devices(config, DeviceType.RING.value))
        devices = [target] if target is not None else []
        return await self.camera.fetch_all(devices, self.credentials.camera())

    def ring_settings(self) -> Dict[str, Any]:
        config = self.load_config()
        settings = config.get("settings") or {}
        return {
            "snapshotInterval": settings.get("ringSnapshotInterval")
            or int(SNAPSHOT_FRESHNESS_SECONDS),
            "devices": get_devices(config, DeviceType.RING.value),
        }

    def update_ring_settings(self, snapshot_interval: Optional[int]) -> Dict[str, Any]:
        config = self.load_config()
        if snapshot_interval is not None:
            settings = dict(config.get("settings") or {})
            settings["ringSnapshotInterval"] = clamp_snapshot_interval(snapshot_interval)
            config["settings"] = settings
        self.config_store.save(config)
        return config

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self, device_type: str, save: bool) -> List[Dict[str, Any]]:
        """Discover one type, merging the result into the inventory when ``save``."""
        config = self.load_config()
        found = await self.discovery.discover(
            device_type, config, self.credentials.thermostat(), self.credentials.camera()
        )
        if save and found:
            config[device_type] = merge(get_devices(config, device_type), found, device_type)
            self.config_store.save(config)
            logger.info(f"Saved {len(found)} {device_type} device(s) to config")
        return found

    async def discover_all(self, save: bool) -> Dict[str, Any]:
        config = self.load_config()
        results = await self.discovery.discover_all(
            config, self.credentials.thermostat(), self.credentials.camera()
        )
        if save:
            for device_type in DEVICE_TYPES:
                found = results.get(device_type) or []
                if found:
                    config[device_type] = merge(
                        get_devices(config, device_type), found, device_type
                    )
            self.config_store.save(config)
        return results

    async def discover_with(self, request: DiscoverRequest) -> Dict[str, Any]:
        """Discovery with ad-hoc credentials (setup wizard); nothing is saved."""
        config = self.load_config()
        return await self.discovery.discover_all(
            config,
            {"username": request.honeywellEmail, "password": request.honeywellPassword},
            {"refresh_token": request.ringToken},
        )

    # ------------------------------------------------------------------
    # Relays
    # ------------------------------------------------------------------

    def relays(self, config: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        config = config if config is not None else self.load_config()
        return get_devices(config, DeviceType.SHELLY.value)

    def find_relay(self, identity: Any) -> Dict[str, Any]:
        for device in self.relays():
            if matches(device, identity):
                return device
        raise DeviceNotFoundError(identity, {"type": DeviceType.SHELLY.value})

    def relays_in_room(self, room: str) -> List[Dict[str, Any]]:
        wanted = room.lower()
        return [d for d in self.relays() if str(d.get("room") or "").lower() == wanted]

    async def relay_status(self) -> List[Dict[str, Any]]:
        return await self.shelly.status_all(self.relays())

    async def set_relay(self, identity: Any, state: bool) -> Dict[str, Any]:
        device = self.find_relay(identity)
        await self.shelly.set_state(device, state)
        return device

    async def set_all_relays(self, state: bool) -> List[Dict[str, Any]]:
        return await self.shelly.set_many(self.relays(), state)

    async def set_room(self, room: str, state: bool) -> List[Dict[str, Any]]:
        return await self.shelly.set_many(self.relays_in_room(room), state)

    def rooms(self) -> List[str]:
        rooms: List[str] = []
        for device in self.relays():
            room = device.get("room")
            if room and room not in rooms:
                rooms.append(room)
        return rooms

    async def unified_devices(self) -> List[Dict[str, Any]]:
        """Relays with live state plus thermostats as capability entries."""
        config = self.load_config()
        relays = [
            {
                "id": d.get("id"),
                "name": d.get("name") or d.get("id"),
                "type": DeviceType.SHELLY.value,
                "room": d.get("room") or "Unassigned",
                "icon": d.get("icon") or "💡",
                "ip": d.get("ip"),
                "gen": d.get("gen") or 1,
                "capabilities": ["switch", "power-meter"],
            }
            for d in get_devices(config, DeviceType.SHELLY.value)
        ]
        statuses = await self.shelly.status_all(relays)
        devices = [
            {**{k: v for k, v in s.items() if k != "on"}, "state": s["on"]} for s in statuses
        ]

        for d in get_devices(config, DeviceType.HONEYWELL.value):
            devices.append(
                {
                    "id": d.get("id"),
                    "name": d.get("name") or f"Thermostat {d.get('id')}",
                    "type": DeviceType.HONEYWELL.value,
                    "capabilities": ["thermostat"],
                    "online": True,
                }
            )
        return devices

    # ------------------------------------------------------------------
    # Scenes / broadcast
    # ------------------------------------------------------------------

    def scenes(self, config: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
        """Built-in scenes overlaid with the user's scenes, keyed by lower-case name."""
        config = config if config is not None else self.load_config()
        scenes = {name: dict(scene) for name, scene in BUILTIN_SCENES.items()}
        for scene in config.get("scenes") or []:
            if isinstance(scene, dict) and scene.get("name"):
                scenes[str(scene["name"]).lower()] = {
                    k: v for k, v in scene.items() if k != "name"
                }
        return scenes

    async def activate_scene(self, name: str) -> Optional[List[Dict[str, Any]]]:
        """Run a scene; returns per-relay results, or None for an unknown scene."""
        config = self.load_config()
        scene = self.scenes(config).get(name.lower())
        if scene is None:
            return None

        results: List[Dict[str, Any]] = []
        if isinstance(scene.get("shelly"), bool):
            results = await self.shelly.set_many(self.relays(config), scene["shelly"])
        logger.info(f"Scene {name} activated ({len(results)} relay(s))")
        return results

    def broadcast(self, request: BroadcastRequest) -> Dict[str, Any]:
        event = {
            "id": str(int(self._clock() * 1000)),
            "timestamp": utc_now_iso(),
            "device": request.device or "Test Device",
            "utterance": request.message or request.text or "Test broadcast",
            "response": "Broadcast received",
            "type": "general",
        }
        delivered = self.events.publish(event)
        logger.info(f"Broadcast event {event['id']} to {delivered} subscriber(s)")
        return event

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        config = self.load_config()
        return {
            "status": "healthy",
            "uptime": self.uptime(),
            "timestamp": utc_now_iso(),
            "configVersion": get_version(config),
            "config": device_counts(config),
        }
