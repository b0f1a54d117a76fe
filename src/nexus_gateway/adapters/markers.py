"""Marker extraction for scraped provider pages.

A page is never parsed as a document. Each field is located by a fixed text
marker that precedes its value, so a provider is described entirely by a
table of ``field -> pattern``. Absent markers leave the field out of the
result rather than raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Sequence

from ..constants import ACTIVE_STATUS_CODES, THERMOSTAT_MODES, UNKNOWN_MODE

Converter = Callable[[str], Any]


def _number(raw: str) -> float | int:
    value = float(raw)
    return int(value) if value.is_integer() else value


@dataclass(slots=True)
class MarkerParser:
    """Extracts named fields from unstructured text using per-field markers."""

    provider: str
    patterns: Mapping[str, Pattern[str]]
    converters: Mapping[str, Converter] = field(default_factory=dict)

    def extract(self, text: Optional[str]) -> Dict[str, Any]:
        """Return every field whose marker occurs in ``text``."""
        result: Dict[str, Any] = {}
        if not text:
            return result

        for name, pattern in self.patterns.items():
            match = pattern.search(text)
            if not match:
                continue
            convert = self.converters.get(name, _number)
            try:
                result[name] = convert(match.group(1))
            except ValueError:
                continue
        return result


def property_marker(name: str, integer: bool = False) -> Pattern[str]:
    """Pattern for the portal's ``Property.<name>, <value>`` script markers."""
    value = r"(\d+)" if integer else r"([\d.]+)"
    return re.compile(rf"Property\.{re.escape(name)},\s*{value}")


THERMOSTAT_PARSER = MarkerParser(
    provider="honeywell",
    patterns={
        "dispTemperature": property_marker("dispTemperature"),
        "indoorHumidity": property_marker("indoorHumidity"),
        "heatSetpoint": property_marker("heatSetpoint"),
        "coolSetpoint": property_marker("coolSetpoint"),
        "outdoorTemp": property_marker("outdoorTemp"),
        "outdoorHumidity": property_marker("outdoorHumidity"),
        "systemSwitchPosition": property_marker("systemSwitchPosition", integer=True),
        "statusHeat": property_marker("statusHeat", integer=True),
        "statusCool": property_marker("statusCool", integer=True),
    },
)

_PARSERS: Dict[str, MarkerParser] = {THERMOSTAT_PARSER.provider: THERMOSTAT_PARSER}


def register_parser(parser: MarkerParser) -> None:
    """Register (or replace) the marker parser for a provider."""
    _PARSERS[parser.provider] = parser


def get_parser(provider: str) -> MarkerParser:
    """Return the registered parser for ``provider``.

    Raises:
        KeyError: If no parser is registered for the provider
    """
    return _PARSERS[provider]


def derive_mode(position: Any, modes: Sequence[str] = THERMOSTAT_MODES) -> str:
    """Map a positional mode index to its name; anything out of range is Unknown."""
    if isinstance(position, bool) or not isinstance(position, (int, float)):
        return UNKNOWN_MODE
    if not float(position).is_integer():
        return UNKNOWN_MODE
    index = int(position)
    if 0 <= index < len(modes):
        return modes[index]
    return UNKNOWN_MODE


def derive_status(
    status_heat: Any,
    status_cool: Any,
    active_codes: Sequence[int] = ACTIVE_STATUS_CODES,
) -> str:
    """Equipment status from the two indicators; heating takes precedence."""
    if status_heat in active_codes:
        return "Heating"
    if status_cool in active_codes:
        return "Cooling"
    return "Idle"
