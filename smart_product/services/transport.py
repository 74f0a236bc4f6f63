"""Device shadow and topic transport"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from smart_product.core.errors import ShadowNotFoundError, TransportError

logger = logging.getLogger(__name__)


def shadow_topic(thing_name: str, action: str) -> str:
    """AWS IoT classic shadow topic, e.g. $aws/things/{thing}/shadow/update"""
    return f"$aws/things/{thing_name}/shadow/{action}"


class DeviceTransport(ABC):
    """Reads and writes device shadows and publishes device messages"""

    @abstractmethod
    async def get_shadow(self, thing_name: str) -> Dict[str, Any]:
        """Current shadow document; ShadowNotFoundError if there is none"""

    @abstractmethod
    async def update_shadow(self, thing_name: str, desired: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``desired`` into the shadow's desired state"""

    @abstractmethod
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Publish a JSON payload on a topic"""

    @abstractmethod
    async def resolve_endpoint(self) -> str:
        """Data plane endpoint devices connect to"""


class IotDataTransport(DeviceTransport):
    """AWS IoT data plane over HTTPS (boto3 ``iot-data``)"""

    def __init__(self, region_name: str, iot_client=None, data_client=None):
        self.region_name = region_name
        self.iot = iot_client or boto3.client("iot", region_name=region_name)
        self._data_client = data_client
        self._endpoint: Optional[str] = None

    async def resolve_endpoint(self) -> str:
        if self._endpoint is None:
            try:
                response = await asyncio.to_thread(
                    self.iot.describe_endpoint, endpointType="iot:Data-ATS"
                )
            except (BotoCoreError, ClientError) as e:
                raise TransportError(f"Failed to describe IoT endpoint: {e}") from e
            self._endpoint = response["endpointAddress"]
        return self._endpoint

    async def _data(self):
        if self._data_client is None:
            endpoint = await self.resolve_endpoint()
            self._data_client = boto3.client(
                "iot-data", region_name=self.region_name, endpoint_url=f"https://{endpoint}"
            )
        return self._data_client

    async def get_shadow(self, thing_name):
        client = await self._data()
        try:
            response = await asyncio.to_thread(client.get_thing_shadow, thingName=thing_name)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                raise ShadowNotFoundError(f"No shadow for {thing_name}") from e
            raise TransportError(f"Failed to get shadow for {thing_name}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to get shadow for {thing_name}: {e}") from e
        document = json.loads(response["payload"].read())
        logger.debug(f"current shadow document: {document}")
        return document

    async def update_shadow(self, thing_name, desired):
        client = await self._data()
        payload = json.dumps({"state": {"desired": desired}})
        try:
            response = await asyncio.to_thread(
                client.update_thing_shadow, thingName=thing_name, payload=payload
            )
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"Failed to update shadow for {thing_name}: {e}") from e
        document = json.loads(response["payload"].read())
        logger.debug(f"shadow update response: {document}")
        return document

    async def publish(self, topic, payload):
        client = await self._data()
        try:
            await asyncio.to_thread(client.publish, topic=topic, qos=1, payload=json.dumps(payload))
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"Failed to publish to {topic}: {e}") from e
        logger.debug(f"Published to {topic}: {payload}")
