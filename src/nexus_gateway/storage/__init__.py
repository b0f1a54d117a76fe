"""Storage package for the device inventory and provider credentials.

Both documents are whole-file JSON replacements guarded by an in-process
lock; the inventory is schema-versioned and migrated on load.
"""

from .config_store import ConfigStore, deep_merge, device_counts, get_devices, get_version
from .credentials import CredentialStore
from .models import (
    BroadcastRequest,
    Credentials,
    CredentialsUpdate,
    DeviceAddRequest,
    DeviceIdentity,
    DeviceRemoveRequest,
    DevicesConfigRequest,
    DeviceUpdateRequest,
    DiscoverRequest,
    RescanRequest,
    ResetRequest,
    RingSettingsRequest,
    ShellyControlRequest,
    StateRequest,
)

__all__ = [
    "ConfigStore",
    "CredentialStore",
    "deep_merge",
    "device_counts",
    "get_devices",
    "get_version",
    # Models
    "BroadcastRequest",
    "Credentials",
    "CredentialsUpdate",
    "DeviceAddRequest",
    "DeviceIdentity",
    "DeviceRemoveRequest",
    "DevicesConfigRequest",
    "DeviceUpdateRequest",
    "DiscoverRequest",
    "RescanRequest",
    "ResetRequest",
    "RingSettingsRequest",
    "ShellyControlRequest",
    "StateRequest",
]
