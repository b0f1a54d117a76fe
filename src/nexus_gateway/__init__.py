"""NEXUS home-automation aggregation gateway.

Aggregates thermostats, cameras, relays and flight/weather feeds behind one
JSON API, backed by a versioned device inventory and a separate credential
store.
"""

__version__ = "2.0.0"
