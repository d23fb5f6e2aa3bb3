"""MQTT bridge between the RV broker and dashboard WebSocket clients."""

import asyncio
import json
import logging
import ssl
from typing import TYPE_CHECKING, Any, Dict, Optional

import paho.mqtt.client as mqtt

from .handlers import BroadcastFn, MessageHandlers
from .topics import Topics

if TYPE_CHECKING:
    from ..config import MQTTConfig, TLSConfig

COMMAND_QOS = 1
PAHO_LOGGER = "paho.mqtt"


class PinnedHostnameSSLContext(ssl.SSLContext):
    """SSL context that checks the peer certificate against a fixed hostname.

    The broker is reached through an internal address while its certificate
    is issued for a logical name.
    """

    pinned_hostname: Optional[str] = None

    def wrap_socket(self, sock, *args, server_hostname=None, **kwargs):
        return super().wrap_socket(
            sock, *args, server_hostname=self.pinned_hostname or server_hostname, **kwargs
        )


class TelemetryBridge:
    """Owns the broker connection, routes telemetry to the hub and publishes commands."""

    def __init__(self, config: "MQTTConfig", broadcast: BroadcastFn):
        """Initialize the MQTT bridge.

        Args:
            config: MQTT configuration (use AppConfig.from_env().mqtt)
            broadcast: Hub coroutine function taking (channel, data)
        """
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.connected = False
        self.client_id = config.generate_client_id()

        self.handlers = MessageHandlers(broadcast)
        self.mqtt_client = self._create_mqtt_client()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._inbox: Optional["asyncio.Queue[tuple[str, bytes]]"] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._pending_subscriptions: Dict[int, str] = {}

    def _create_mqtt_client(self) -> mqtt.Client:
        """Create and configure MQTT client.

        Returns:
            Configured MQTT client instance
        """
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id, clean_session=True
        )

        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        client.enable_logger(logging.getLogger(PAHO_LOGGER))

        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)

        if self.config.use_tls:
            self._configure_tls(client, self.config.tls)

        # Fixed backoff, retried forever by the network thread
        client.reconnect_delay_set(
            min_delay=self.config.reconnect_period, max_delay=self.config.reconnect_period
        )
        return client

    def _configure_tls(self, client: mqtt.Client, tls_config: Optional["TLSConfig"]) -> None:
        """Configure TLS/SSL for MQTT connection.

        Args:
            client: MQTT client instance
            tls_config: TLS configuration object, or None for system roots only

        Raises:
            Exception: If TLS configuration fails
        """
        try:
            context = PinnedHostnameSSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.load_default_certs()
            if tls_config and tls_config.ca_certs:
                context.load_verify_locations(cafile=tls_config.ca_certs)
                self.logger.info(f"Loaded CA certificate from {tls_config.ca_certs}")
            if tls_config and tls_config.cert_hostname:
                context.pinned_hostname = tls_config.cert_hostname
                self.logger.info(
                    f"Verifying broker certificate against '{tls_config.cert_hostname}'"
                )
            client.tls_set_context(context)
            self.logger.info("TLS/SSL configured successfully")
        except Exception as e:
            self.logger.error(f"Failed to configure TLS/SSL: {e}")
            raise

    # ------------------------------------------------------------------
    # Network thread callbacks
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback for when MQTT client connects."""
        if reason_code.is_failure:
            self.logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            return

        self.logger.info("Connected to MQTT broker")
        self.connected = True
        # SUBACKs lost with the previous session will never arrive
        self._pending_subscriptions.clear()
        self._subscribe_to_topics(client)

    def _on_connect_fail(self, client, userdata):
        """Callback for a connection attempt that never reached the broker."""
        self.logger.error(
            f"Could not connect to MQTT broker at {self.config.host}:{self.config.port}, "
            f"retrying in {self.config.reconnect_period}s"
        )

    def _subscribe_to_topics(self, client: mqtt.Client) -> None:
        """Subscribe to every telemetry topic independently.

        Args:
            client: MQTT client instance
        """
        for topic in Topics.SUBSCRIPTIONS:
            try:
                result, mid = client.subscribe(topic)
            except Exception as e:
                self.logger.error(f"Failed to subscribe to {topic}: {e}")
                continue

            if result != mqtt.MQTT_ERR_SUCCESS:
                self.logger.error(f"Failed to subscribe to {topic}: MQTT error code {result}")
                continue

            self._pending_subscriptions[mid] = topic

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
        """Callback for when the broker answers a subscription."""
        topic = self._pending_subscriptions.pop(mid, f"mid {mid}")
        for reason_code in reason_code_list:
            if reason_code.is_failure:
                self.logger.error(f"Broker refused subscription to {topic}: {reason_code}")
            else:
                self.logger.info(f"Subscribed to {topic}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Callback for when MQTT client disconnects."""
        self.connected = False
        if reason_code.is_failure:
            self.logger.warning(f"Unexpected disconnection from MQTT broker: {reason_code}")
        else:
            self.logger.info("Disconnected from MQTT broker")

    def _on_message(self, client, userdata, message):
        """Hand an inbound message to the event loop."""
        if self._loop is None or self._inbox is None:
            self.logger.warning(f"Dropping message on {message.topic}: bridge not started")
            return
        self._loop.call_soon_threadsafe(self._inbox.put_nowait, (message.topic, message.payload))

    # ------------------------------------------------------------------
    # Event loop side
    # ------------------------------------------------------------------

    async def _dispatch_forever(self) -> None:
        """Drain the inbox in broker delivery order."""
        while True:
            topic, payload = await self._inbox.get()
            try:
                await self.handlers.handle_message(topic, payload)
            except Exception as e:
                self.logger.error(f"Error handling message on {topic}: {e}", exc_info=True)
            finally:
                self._inbox.task_done()

    async def start(self) -> None:
        """Start the dispatch task and connect in the background."""
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        self._dispatch_task = asyncio.create_task(self._dispatch_forever())

        self.logger.info(
            f"Connecting to MQTT broker at {self.config.host}:{self.config.port} "
            f"as {self.client_id}"
        )
        self.mqtt_client.connect_async(self.config.host, self.config.port, self.config.keepalive)
        self.mqtt_client.loop_start()

    async def stop(self) -> None:
        """Disconnect from the broker and stop dispatching."""
        self.mqtt_client.disconnect()
        self.mqtt_client.loop_stop()
        self.connected = False

        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None
        self.logger.info("MQTT bridge stopped")

    # ------------------------------------------------------------------
    # Outbound publishes
    # ------------------------------------------------------------------

    def _publish(self, topic: str, payload: Any, description: str, retain: bool = False) -> bool:
        """Publish a JSON payload if the broker connection is up.

        Returns:
            True if the client accepted the message, False otherwise
        """
        if not self.connected:
            self.logger.warning(f"MQTT not connected, cannot publish {description}")
            return False

        self.logger.info(f"Publishing {description} to {topic}: {payload}")
        result = self.mqtt_client.publish(topic, json.dumps(payload), qos=COMMAND_QOS, retain=retain)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error(f"Failed to publish {description}: MQTT error code {result.rc}")
            return False
        return True

    def publish_thermostat_command(
        self, target_temp: Optional[float] = None, mode: Optional[str] = None
    ) -> bool:
        """Publish a partial thermostat command; omitted fields are left out."""
        payload: Dict[str, Any] = {}
        if target_temp is not None:
            payload["target_temp"] = target_temp
        if mode is not None:
            payload["mode"] = mode
        return self._publish(Topics.THERMOSTAT_COMMAND, payload, "thermostat command")

    def publish_light_command(
        self, light_id: int, state: str, brightness: Optional[int] = None
    ) -> bool:
        """Publish a light command to the light controller."""
        payload: Dict[str, Any] = {"state": state}
        if brightness is not None:
            payload["brightness"] = brightness
        return self._publish(Topics.light_command(light_id), payload, "light command")

    def publish_light_status(self, light_id: int, payload: Dict[str, Any]) -> bool:
        """Publish a light status report, as a simulated light controller would."""
        return self._publish(Topics.light_status(light_id), payload, "light status")

    def publish_deployment_available(self, payload: Dict[str, Any]) -> bool:
        """Announce a new deployment package; retained for late subscribers."""
        return self._publish(
            Topics.DEPLOYMENT_AVAILABLE, payload, "deployment notification", retain=True
        )
