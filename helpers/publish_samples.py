#!/usr/bin/env python3
"""Helper script that plays the RV's sensors and light controller against a broker."""

import argparse
import json
import random
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from rv_dashboard.mqtt.topics import Topics, parse_topic


def sample_payloads() -> Dict[str, Dict[str, Any]]:
    """One plausible status payload per subscribed topic."""
    return {
        Topics.light_status(1): {"state": random.choice(["on", "off"]), "brightness": random.randint(0, 100)},
        Topics.THERMOSTAT_STATUS: {"target_temp": random.randint(65, 75), "mode": "auto"},
        Topics.ENERGY_STATUS: {
            "solar_watts": random.randint(0, 400),
            "battery_percent": random.randint(40, 100),
            "battery_voltage": round(random.uniform(12.2, 13.6), 2),
            "charge_type": random.choice(["solar", "shore", "none"]),
            "time_remaining_minutes": random.randint(60, 1200),
        },
        Topics.AIRQUALITY_STATUS: {"iaq_index": random.randint(0, 150), "co2_ppm": random.randint(400, 1200)},
        Topics.AIRQUALITY_TEMP_HUMID: {
            "temperature": round(random.uniform(60, 80), 1),
            "humidity": round(random.uniform(30, 60), 1),
        },
        Topics.GPS_LAT_LON: {"latitude": 35.5951, "longitude": -82.5515},
        Topics.GPS_ALT: {"altitudeInMeters": 650.0, "altitudeFeet": 2132.5},
        Topics.GPS_DETAILS: {
            "numberOfSatellites": random.randint(4, 12),
            "speedOverGround": 0.0,
            "courseOverGround": 0.0,
            "gnssMode": 3,
        },
    }


class SamplePublisher:
    """Publishes sample telemetry and answers light commands."""

    def __init__(self, broker_host: str = "localhost", broker_port: int = 1883,
                 username: Optional[str] = None, password: Optional[str] = None,
                 echo_lights: bool = False):
        """Initialize the publisher.

        Args:
            broker_host: MQTT broker host
            broker_port: MQTT broker port
            username: MQTT username (optional)
            password: MQTT password (optional)
            echo_lights: Reply to light commands with a matching status
        """
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.echo_lights = echo_lights

        if username:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

        try:
            self.client.connect(broker_host, broker_port, 60)
            self.client.loop_start()
            print(f"Connected to MQTT broker at {broker_host}:{broker_port}")
        except Exception as e:
            print(f"Failed to connect to MQTT broker: {e}")
            raise

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            print(f"Failed to connect: {reason_code}")
            return
        if self.echo_lights:
            client.subscribe(Topics.LIGHT_COMMAND)
            print(f"Listening for light commands on {Topics.LIGHT_COMMAND}")

    def _on_message(self, client, userdata, message):
        """Answer a light command the way the real controller does."""
        parsed = parse_topic(message.topic)
        if parsed is None or parsed.identifier is None:
            return
        try:
            command = json.loads(message.payload)
        except ValueError:
            print(f"Ignoring malformed command on {message.topic}")
            return

        status = {"state": command.get("state"), "brightness": command.get("brightness", 100)}
        self.publish(Topics.light_status(int(parsed.identifier)), status)

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.client.publish(topic, json.dumps(payload), qos=1)
        print(f"Sent {topic}: {payload}")

    def publish_all(self, only: Optional[str] = None) -> None:
        for topic, payload in sample_payloads().items():
            if only and only not in topic:
                continue
            self.publish(topic, payload)

    def disconnect(self):
        """Disconnect from MQTT broker."""
        self.client.loop_stop()
        self.client.disconnect()
        print("Disconnected from MQTT broker")


def main():
    """Main function with CLI interface."""
    parser = argparse.ArgumentParser(description="RV dashboard sample telemetry publisher")
    parser.add_argument("--host", default="localhost", help="MQTT broker host")
    parser.add_argument("--port", type=int, default=1883, help="MQTT broker port")
    parser.add_argument("--username", help="MQTT username")
    parser.add_argument("--password", help="MQTT password")
    parser.add_argument("--only", help="Only publish topics containing this text (e.g. 'gps')")
    parser.add_argument("--interval", type=float, default=0,
                        help="Repeat every N seconds (0 publishes once)")
    parser.add_argument("--echo-lights", action="store_true",
                        help="Act as the light controller and answer light commands")

    args = parser.parse_args()

    try:
        publisher = SamplePublisher(
            args.host, args.port, args.username, args.password, echo_lights=args.echo_lights
        )
        time.sleep(1)  # Allow connection to establish
    except Exception as e:
        print(f"Failed to initialize publisher: {e}")
        return 1

    try:
        publisher.publish_all(args.only)
        while args.interval > 0 or args.echo_lights:
            time.sleep(args.interval or 1)
            if args.interval > 0:
                publisher.publish_all(args.only)
    except KeyboardInterrupt:
        print("\nStopping")
    finally:
        publisher.disconnect()

    return 0


if __name__ == "__main__":
    exit(main())
