"""Entry points for device-originated traffic"""

import json
import logging
from typing import Any, Dict

from smart_product.core.errors import InvalidRequestError, SmartProductError
from smart_product.services import mqtt_client

logger = logging.getLogger(__name__)


def parse_payload(payload) -> Any:
    """Device payloads arrive either decoded or as JSON text"""
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except ValueError as e:
            raise InvalidRequestError("BadRequest", f"Payload is not valid JSON: {e}") from e
    return payload


class DeviceMessageHandlers:
    """Routes inbound topic messages to the services that own them"""

    def __init__(self, services):
        self.services = services

    def register(self, mqtt_service) -> None:
        mqtt_service.register_callback(mqtt_client.EVENTS, self.on_event)
        mqtt_service.register_callback(mqtt_client.COMMANDS, self.on_command_status)
        mqtt_service.register_callback(mqtt_client.TELEMETRY, self.on_telemetry)
        mqtt_service.register_callback(mqtt_client.CERTIFICATES, self.on_certificate_registered)

    async def on_event(self, device_id: str, payload) -> Dict[str, Any]:
        """Store the event, then try to alert its owner"""
        message = parse_payload(payload)
        if not isinstance(message, dict):
            raise InvalidRequestError("BadRequest", "Event payload must be a JSON object")
        # The topic names the device; the payload cannot speak for another one
        message["deviceId"] = device_id

        event = await self.services.events.create_event(message)
        try:
            result = await self.services.alerts.send_alert(event)
            logger.info(result["message"])
        except SmartProductError as e:
            # The event is stored either way
            logger.warning(f"[{e.error}] {e.message}")
        return event

    async def on_command_status(self, device_id: str, payload):
        message = parse_payload(payload)
        if not isinstance(message, dict):
            raise InvalidRequestError("BadRequest", "Command status must be a JSON object")
        message["deviceId"] = device_id
        return await self.services.commands.update_status(message)

    async def on_telemetry(self, device_id: str, payload):
        return await self.services.telemetry.ingest(device_id, parse_payload(payload))

    async def on_certificate_registered(self, ca_id: str, payload):
        event = parse_payload(payload)
        logger.info(f"Certificate registered under CA {ca_id}")
        return await self.services.jitr.register_certificate(event)
