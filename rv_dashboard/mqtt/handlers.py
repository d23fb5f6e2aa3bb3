"""Inbound telemetry routing for the MQTT bridge."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .topics import Domains, MessageTypes, parse_topic

BroadcastFn = Callable[[str, Dict[str, Any]], Awaitable[None]]


def reject_constant(token: str) -> Any:
    """Refuse NaN and Infinity, which browsers cannot parse."""
    raise ValueError(f"non-standard JSON constant {token}")


@dataclass(frozen=True)
class Route:
    """Maps one (domain, message type) pair to a WebSocket channel.

    ``fields`` is the whitelist copied from the payload; ``None`` forwards
    the payload unchanged.
    """

    channel: str
    fields: Optional[Tuple[str, ...]]
    identified: bool = False


ROUTES: Dict[Tuple[str, str], Route] = {
    (Domains.LIGHTS, MessageTypes.STATUS): Route(
        "light", ("state", "brightness"), identified=True
    ),
    (Domains.THERMOSTAT, MessageTypes.STATUS): Route("thermostat", ("target_temp", "mode")),
    (Domains.ENERGY, MessageTypes.STATUS): Route(
        "energy",
        (
            "solar_watts",
            "battery_percent",
            "battery_voltage",
            "charge_type",
            "time_remaining_minutes",
        ),
    ),
    (Domains.AIRQUALITY, MessageTypes.STATUS): Route("airquality", ("iaq_index", "co2_ppm")),
    (Domains.AIRQUALITY, MessageTypes.TEMP_HUMID): Route("temphumid", None),
    (Domains.GPS, MessageTypes.LAT_LON): Route("latlon", ("latitude", "longitude")),
    (Domains.GPS, MessageTypes.ALT): Route("alt", ("altitudeInMeters", "altitudeFeet")),
    (Domains.GPS, MessageTypes.DETAILS): Route(
        "gnss_details",
        ("numberOfSatellites", "speedOverGround", "courseOverGround", "gnssMode"),
    ),
}


def project(route: Route, payload: Any, identifier: Optional[int] = None) -> Any:
    """Build the broadcast data for a route from a decoded payload.

    Only whitelisted keys present in the payload are copied; absent keys stay
    absent rather than being defaulted.
    """
    if route.fields is None:
        return payload

    source = payload if isinstance(payload, dict) else {}
    data: Dict[str, Any] = {}
    if route.identified:
        data["id"] = identifier
        data["_id"] = identifier
    for field in route.fields:
        if field in source:
            data[field] = source[field]
    return data


class MessageHandlers:
    """Decodes inbound MQTT messages and forwards them to the broadcast hub."""

    def __init__(self, broadcast: BroadcastFn):
        """Initialize message handlers.

        Args:
            broadcast: Coroutine function taking (channel, data)
        """
        self.broadcast = broadcast
        self.logger = logging.getLogger(__name__)

    def resolve(self, topic: str) -> Optional[Tuple[Route, Optional[int]]]:
        """Find the route and embedded identifier for a topic.

        Returns:
            (route, identifier) or None for topics outside the route table
        """
        parsed = parse_topic(topic)
        if parsed is None:
            return None

        route = ROUTES.get((parsed.domain, parsed.message_type))
        if route is None:
            return None

        identifier = None
        if route.identified:
            try:
                identifier = int(parsed.identifier)
            except ValueError:
                self.logger.debug(f"Ignoring {topic}: non-numeric id '{parsed.identifier}'")
                return None

        return route, identifier

    async def handle_message(self, topic: str, payload: bytes) -> bool:
        """Dispatch one inbound message.

        Args:
            topic: MQTT topic the message arrived on
            payload: Raw message payload

        Returns:
            True if a broadcast was issued, False if the message was dropped
        """
        try:
            data = json.loads(payload, parse_constant=reject_constant)
        except ValueError as e:
            self.logger.error(f"Dropping message on {topic}: invalid JSON payload ({e})")
            return False

        resolved = self.resolve(topic)
        if resolved is None:
            return False

        route, identifier = resolved
        self.logger.debug(f"Received {route.channel} update on {topic}: {data}")
        await self.broadcast(route.channel, project(route, data, identifier))
        return True
