"""Pydantic models for stored credentials and API request bodies.

Inventory records themselves stay free-form dictionaries: provider payloads
differ per device type and user edits may add arbitrary keys, so only the
request envelopes around them are validated.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DeviceIdentity = Union[int, str]


class Credentials(BaseModel):
    """Provider secrets, stored apart from the inventory."""

    model_config = ConfigDict(extra="ignore")

    honeywellEmail: Optional[str] = Field(None, description="Thermostat portal login")
    honeywellPassword: Optional[str] = Field(None, description="Thermostat portal password")
    ringToken: Optional[str] = Field(None, description="Camera cloud refresh token")
    shellyAuth: Optional[str] = Field(None, description="Relay cloud auth key")


class CredentialsUpdate(Credentials):
    """Partial credential update; only fields present in the body change."""


class DeviceAddRequest(BaseModel):
    """Request to append a device record to one type list"""
    type: str
    device: Dict[str, Any]


class DeviceUpdateRequest(BaseModel):
    """Request to update a device record matched by identity"""
    type: str
    id: DeviceIdentity
    updates: Dict[str, Any] = Field(default_factory=dict)


class DeviceRemoveRequest(BaseModel):
    """Request to remove a device record matched by identity"""
    type: str
    id: DeviceIdentity


class DevicesConfigRequest(BaseModel):
    """Bulk update of user fields (names, rooms, icons)"""
    shelly: Optional[List[Dict[str, Any]]] = None
    honeywell: Optional[List[Dict[str, Any]]] = None


class ResetRequest(BaseModel):
    confirm: Optional[str] = None


class DiscoverRequest(BaseModel):
    """Ad-hoc credentials for a one-off discovery run"""
    honeywellEmail: Optional[str] = None
    honeywellPassword: Optional[str] = None
    ringToken: Optional[str] = None


class RescanRequest(BaseModel):
    save: bool = False


class StateRequest(BaseModel):
    state: bool


class ShellyControlRequest(BaseModel):
    device: DeviceIdentity
    state: bool


class RingSettingsRequest(BaseModel):
    snapshotInterval: Optional[int] = None


class BroadcastRequest(BaseModel):
    message: Optional[str] = None
    text: Optional[str] = None
    device: Optional[str] = None
