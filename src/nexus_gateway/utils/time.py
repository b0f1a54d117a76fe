"""Timestamp helpers."""

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Current UTC timestamp with millisecond precision, for event payloads."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
