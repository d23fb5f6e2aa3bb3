"""MQTT bridge functionality for the RV dashboard.

This package owns the broker connection, the fixed topic namespace and the
routing of inbound telemetry to WebSocket broadcast channels.
"""

from .bridge import TelemetryBridge
from .handlers import ROUTES, MessageHandlers, Route
from .topics import ParsedTopic, Topics, parse_topic

__all__ = [
    "TelemetryBridge",
    "MessageHandlers",
    "Route",
    "ROUTES",
    "Topics",
    "ParsedTopic",
    "parse_topic",
]
