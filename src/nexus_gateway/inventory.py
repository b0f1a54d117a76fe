"""Inventory reconciliation between discovery results and stored records.

A record's identity is its ``id`` (provider-assigned, numeric or string) or,
for network devices without one, its ``ip``. Identities are compared in
canonical string form so ``42`` and ``"42"`` name the same device.

Merging follows an explicit per-type precedence table instead of layered
dict spreads:

- USER fields (name, room, icon) keep the stored value when it is set
- PROVIDER fields (connectivity and capability data) take the discovered value
- anything else keeps the stored value and is only filled from discovery
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .constants import DeviceType

logger = logging.getLogger(__name__)

DeviceRecord = Dict[str, Any]

USER_FIELDS: FrozenSet[str] = frozenset({"name", "room", "icon"})

PROVIDER_FIELDS: Dict[str, FrozenSet[str]] = {
    DeviceType.SHELLY.value: frozenset({"ip", "mac", "model", "gen", "type"}),
    DeviceType.HONEYWELL.value: frozenset({"type", "locationId", "locationName"}),
    DeviceType.RING.value: frozenset(
        {"type", "model", "batteryLevel", "hasLight", "hasSiren", "locationName"}
    ),
    DeviceType.PIAWARE.value: frozenset({"ip", "port", "url", "path", "type"}),
}

# Used for device types without an entry above
DEFAULT_PROVIDER_FIELDS: FrozenSet[str] = frozenset({"ip", "gen", "model", "type"})


def canonical(value: Any) -> Optional[str]:
    """Canonical string form of an identity value (None when empty)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def identity_key(record: DeviceRecord) -> Optional[str]:
    """Identity of a record: ``id``, falling back to ``ip``."""
    key = canonical(record.get("id"))
    if key is None:
        key = canonical(record.get("ip"))
    return key


def matches(record: DeviceRecord, identity: Any) -> bool:
    """Whether ``identity`` names ``record`` by its id or by its ip."""
    wanted = canonical(identity)
    if wanted is None:
        return False
    return wanted in (canonical(record.get("id")), canonical(record.get("ip")))


def find_index(records: List[DeviceRecord], identity: Any) -> int:
    """Index of the first record named by ``identity``, or -1."""
    for index, record in enumerate(records):
        if matches(record, identity):
            return index
    return -1


def remove(records: Iterable[DeviceRecord], identity: Any) -> List[DeviceRecord]:
    """Records not named by ``identity``."""
    return [r for r in records if not matches(r, identity)]


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def merge_record(
    existing: DeviceRecord,
    discovered: DeviceRecord,
    device_type: str,
) -> DeviceRecord:
    """Combine a stored record with a fresh discovery payload for the same device."""
    provider_fields = PROVIDER_FIELDS.get(device_type, DEFAULT_PROVIDER_FIELDS)
    merged = dict(existing)

    for field, value in discovered.items():
        if field == "id":
            # Keep the stored identity form
            if not _is_set(existing.get("id")):
                merged["id"] = value
        elif field in USER_FIELDS:
            if not _is_set(existing.get(field)):
                merged[field] = value
        elif field in provider_fields:
            if value is not None:
                merged[field] = value
        elif field not in existing:
            merged[field] = value

    return merged


def merge(
    existing: List[DeviceRecord],
    discovered: Iterable[DeviceRecord],
    device_type: str,
) -> List[DeviceRecord]:
    """Upsert discovered devices into an existing record list.

    Existing order is preserved; unmatched discoveries are appended in
    discovery order. Records without any identity are skipped since they
    could never be matched again. Merging the same discovery result twice
    yields the same list as merging it once.
    """
    result = [dict(record) for record in existing]
    positions: Dict[str, int] = {}
    for index, record in enumerate(result):
        key = identity_key(record)
        if key is not None:
            positions.setdefault(key, index)
        ip_key = canonical(record.get("ip"))
        if ip_key is not None:
            positions.setdefault(ip_key, index)

    added = updated = 0
    for device in discovered:
        key = identity_key(device)
        if key is None:
            logger.warning(f"Skipping discovered {device_type} device without id or ip")
            continue

        index = positions.get(key)
        if index is None:
            # Records added by address alone are claimed by the device found there
            index = positions.get(canonical(device.get("ip")))
            if index is not None and canonical(result[index].get("id")) is not None:
                index = None
        if index is None:
            result.append(dict(device))
            positions[key] = len(result) - 1
            ip_key = canonical(device.get("ip"))
            if ip_key is not None:
                positions.setdefault(ip_key, len(result) - 1)
            added += 1
        else:
            result[index] = merge_record(result[index], device, device_type)
            positions.setdefault(key, index)
            updated += 1

    logger.info(f"Merged {device_type} inventory: {added} added, {updated} updated")
    return result
