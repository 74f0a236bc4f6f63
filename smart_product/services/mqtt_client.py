"""MQTT client service for device communication"""

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from smart_product.core.errors import ShadowNotFoundError, TransportError
from smart_product.services.transport import DeviceTransport, shadow_topic

logger = logging.getLogger(__name__)

# Inbound message kinds handed to registered callbacks
EVENTS = "events"
COMMANDS = "commands"
TELEMETRY = "telemetry"
CERTIFICATES = "certificates"

MessageCallback = Callable[[str, Any], Awaitable[Any]]


class MQTTService(DeviceTransport):
    """
    MQTT client service for handling device communication
    Topics:
    - smartproduct/commands/{deviceId} - Commands to devices, status replies from them
    - smartproduct/events/{deviceId} - Device events
    - smartproduct/telemetry/{deviceId} - Device telemetry
    - $aws/events/certificates/registered/{caId} - JITR certificate registrations
    - $aws/things/{deviceId}/shadow/... - Shadow get/update and their replies
    """

    def __init__(self, settings):
        self.settings = settings
        self.client: Optional[mqtt.Client] = None
        self.connected = False
        self.message_callbacks: Dict[str, MessageCallback] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        # Shadow requests waiting for an accepted/rejected reply, by clientToken
        self.pending: Dict[str, asyncio.Future] = {}

    def initialize(self):
        """Initialize MQTT client"""
        self.client = mqtt.Client(
            client_id=self.settings.MQTT_CLIENT_ID, protocol=mqtt.MQTTv311
        )

        # Set callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        # Set credentials if provided
        if self.settings.MQTT_BROKER_USERNAME:
            self.client.username_pw_set(
                self.settings.MQTT_BROKER_USERNAME, self.settings.MQTT_BROKER_PASSWORD
            )

        # TLS; AWS IoT also requires the X.509 client certificate
        if self.settings.MQTT_CA_CERTS or self.settings.MQTT_CERTFILE:
            self.client.tls_set(
                ca_certs=self.settings.MQTT_CA_CERTS,
                certfile=self.settings.MQTT_CERTFILE,
                keyfile=self.settings.MQTT_KEYFILE,
            )

        logger.info(
            f"MQTT client initialized for broker {self.settings.MQTT_BROKER_HOST}:{self.settings.MQTT_BROKER_PORT}"
        )

    def subscriptions(self):
        """Topic filters the service listens on"""
        topics = [
            shadow_topic("+", "get/+"),
            shadow_topic("+", "update/+"),
        ]
        if self.settings.MQTT_SUBSCRIBE:
            topics += [
                f"{self.settings.EVENT_TOPIC}/+",
                f"{self.settings.COMMAND_TOPIC}/+",
                f"{self.settings.TELEMETRY_TOPIC}/+",
                f"{self.settings.CERTIFICATE_REGISTERED_TOPIC}/+",
            ]
        return topics

    def _on_connect(self, client, userdata, flags, rc):
        """Callback for when client connects to broker"""
        if rc == 0:
            self.connected = True
            logger.info("Connected to MQTT broker")

            for topic in self.subscriptions():
                client.subscribe(topic, qos=1)
                logger.info(f"Subscribed to {topic}")
        else:
            logger.error(f"Failed to connect to MQTT broker: {rc}")

    def _on_disconnect(self, client, userdata, rc):
        """Callback for when client disconnects from broker"""
        self.connected = False
        if rc != 0:
            logger.warning(f"Unexpected disconnection from MQTT broker: {rc}")
        else:
            logger.info("Disconnected from MQTT broker")

    def classify(self, topic: str):
        """Map a topic to (kind, device or CA id), or None for foreign topics"""
        parts = topic.split("/")
        if topic.startswith("$aws/things/") and len(parts) >= 6 and parts[3] == "shadow":
            return "shadow", parts[2]
        for kind, prefix in (
            (EVENTS, self.settings.EVENT_TOPIC),
            (COMMANDS, self.settings.COMMAND_TOPIC),
            (TELEMETRY, self.settings.TELEMETRY_TOPIC),
            (CERTIFICATES, self.settings.CERTIFICATE_REGISTERED_TOPIC),
        ):
            if topic.startswith(prefix + "/"):
                return kind, topic[len(prefix) + 1 :]
        return None

    def _on_message(self, client, userdata, msg):
        """Callback for when a message is received"""
        try:
            topic = msg.topic
            payload = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Dropping undecodable MQTT message on {msg.topic}: {e}")
            return

        logger.debug(f"Received message on {topic}: {payload}")

        route = self.classify(topic)
        if route is None:
            return
        kind, identifier = route

        if kind == "shadow":
            self._resolve_shadow_reply(topic, payload)
            return

        callback = self.message_callbacks.get(kind)
        if callback is None or self.loop is None:
            return
        future = asyncio.run_coroutine_threadsafe(callback(identifier, payload), self.loop)
        future.add_done_callback(lambda f: self._log_callback_failure(topic, f))

    @staticmethod
    def _log_callback_failure(topic, future):
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Error processing MQTT message on {topic}: {future.exception()}")

    def _resolve_shadow_reply(self, topic: str, payload: Dict[str, Any]):
        token = payload.get("clientToken") if isinstance(payload, dict) else None
        future = self.pending.get(token)
        if future is None or self.loop is None:
            return

        if topic.endswith("/accepted"):
            self.loop.call_soon_threadsafe(_settle, future, payload, None)
        elif topic.endswith("/rejected"):
            if payload.get("code") == 404:
                error = ShadowNotFoundError(payload.get("message", "No shadow exists"))
            else:
                error = TransportError(f"Shadow request rejected: {payload}")
            self.loop.call_soon_threadsafe(_settle, future, None, error)

    def connect(self):
        """Connect to MQTT broker"""
        self.loop = asyncio.get_running_loop()
        try:
            self.client.connect(
                self.settings.MQTT_BROKER_HOST,
                self.settings.MQTT_BROKER_PORT,
                keepalive=60,
            )
            self.client.loop_start()
            logger.info("MQTT client connection started")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise

    def disconnect(self):
        """Disconnect from MQTT broker"""
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            logger.info("MQTT client disconnected")

    def register_callback(self, message_type: str, callback: MessageCallback):
        """
        Register a coroutine for all devices of a specific message type
        Args:
            message_type: EVENTS, COMMANDS, TELEMETRY or CERTIFICATES
            callback: Coroutine called with (device or CA id, decoded payload)
        """
        self.message_callbacks[message_type] = callback
        logger.info(f"Registered callback for all devices: {message_type}")

    async def publish(self, topic, payload, qos: int = 1):
        if not self.connected:
            raise TransportError("MQTT client not connected")

        result = self.client.publish(topic, json.dumps(payload), qos=qos)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to publish to {topic}: {result.rc}")
        logger.debug(f"Published to {topic}: {payload}")

    async def _shadow_request(self, thing_name: str, action: str, body: Dict[str, Any]):
        token = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self.pending[token] = future
        try:
            await self.publish(shadow_topic(thing_name, action), {**body, "clientToken": token})
            return await asyncio.wait_for(future, timeout=self.settings.SHADOW_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out waiting for shadow {action} of {thing_name}") from e
        finally:
            self.pending.pop(token, None)

    async def get_shadow(self, thing_name):
        document = await self._shadow_request(thing_name, "get", {})
        logger.debug(f"current shadow document: {document}")
        return document

    async def update_shadow(self, thing_name, desired):
        document = await self._shadow_request(
            thing_name, "update", {"state": {"desired": desired}}
        )
        logger.debug(f"shadow update response: {document}")
        return document

    async def resolve_endpoint(self):
        return f"{self.settings.MQTT_BROKER_HOST}:{self.settings.MQTT_BROKER_PORT}"


def _settle(future: asyncio.Future, result, error):
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
