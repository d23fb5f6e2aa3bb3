"""MQTT topic namespace constants and helpers."""

from typing import NamedTuple, Optional

ROOT = "rv"


class Domains:
    """Second topic segment."""

    LIGHTS = "lights"
    THERMOSTAT = "thermostat"
    ENERGY = "energy"
    AIRQUALITY = "airquality"
    GPS = "gps"
    DEPLOYMENT = "deployment"


class MessageTypes:
    """Trailing topic segment."""

    COMMAND = "command"
    STATUS = "status"
    TEMP_HUMID = "temphumid"
    LAT_LON = "latlon"
    ALT = "alt"
    DETAILS = "details"
    AVAILABLE = "available"


# Domains whose third segment is a device identifier
IDENTIFIED_DOMAINS = frozenset({Domains.LIGHTS})


class Topics:
    """Full MQTT topic paths."""

    LIGHT_COMMAND = f"{ROOT}/{Domains.LIGHTS}/+/{MessageTypes.COMMAND}"
    LIGHT_STATUS = f"{ROOT}/{Domains.LIGHTS}/+/{MessageTypes.STATUS}"
    THERMOSTAT_COMMAND = f"{ROOT}/{Domains.THERMOSTAT}/{MessageTypes.COMMAND}"
    THERMOSTAT_STATUS = f"{ROOT}/{Domains.THERMOSTAT}/{MessageTypes.STATUS}"
    ENERGY_STATUS = f"{ROOT}/{Domains.ENERGY}/{MessageTypes.STATUS}"
    AIRQUALITY_STATUS = f"{ROOT}/{Domains.AIRQUALITY}/{MessageTypes.STATUS}"
    AIRQUALITY_TEMP_HUMID = f"{ROOT}/{Domains.AIRQUALITY}/{MessageTypes.TEMP_HUMID}"
    GPS_LAT_LON = f"{ROOT}/{Domains.GPS}/{MessageTypes.LAT_LON}"
    GPS_ALT = f"{ROOT}/{Domains.GPS}/{MessageTypes.ALT}"
    GPS_DETAILS = f"{ROOT}/{Domains.GPS}/{MessageTypes.DETAILS}"
    DEPLOYMENT_AVAILABLE = f"{ROOT}/{Domains.DEPLOYMENT}/{MessageTypes.AVAILABLE}"

    SUBSCRIPTIONS = (
        LIGHT_STATUS,
        ENERGY_STATUS,
        AIRQUALITY_STATUS,
        AIRQUALITY_TEMP_HUMID,
        GPS_LAT_LON,
        GPS_ALT,
        GPS_DETAILS,
        THERMOSTAT_STATUS,
    )

    @staticmethod
    def light_command(light_id: int) -> str:
        return f"{ROOT}/{Domains.LIGHTS}/{light_id}/{MessageTypes.COMMAND}"

    @staticmethod
    def light_status(light_id: int) -> str:
        return f"{ROOT}/{Domains.LIGHTS}/{light_id}/{MessageTypes.STATUS}"


class ParsedTopic(NamedTuple):
    """A topic split into its routing parts."""

    domain: str
    message_type: str
    identifier: Optional[str] = None


def parse_topic(topic: str) -> Optional[ParsedTopic]:
    """Split a topic into (domain, message type, identifier).

    Args:
        topic: Full MQTT topic path

    Returns:
        ParsedTopic, or None when the topic is outside the ``rv`` root or too short
    """
    parts = topic.split("/")
    if parts[0] != ROOT or len(parts) < 3:
        return None

    domain = parts[1]
    if domain in IDENTIFIED_DOMAINS:
        if len(parts) < 4:
            return None
        return ParsedTopic(domain, parts[3], parts[2])

    return ParsedTopic(domain, parts[2])
