"""Stateless vendor clients: relays, aircraft feeds and weather."""

from .piaware import AircraftFeed, aircraft_url, record_url
from .shelly import ShellyClient, control_url, device_gen, status_url
from .weather import WeatherClient

__all__ = [
    "AircraftFeed",
    "ShellyClient",
    "WeatherClient",
    "aircraft_url",
    "control_url",
    "device_gen",
    "record_url",
    "status_url",
]
