"""Registered devices of a user, their removal and their live status"""

import logging
from typing import Any, Dict, List

from smart_product.core.clock import utc_now
from smart_product.core.errors import (
    NotFoundError,
    ShadowNotFoundError,
    SmartProductError,
    StoreError,
    TransportError,
    UpstreamError,
)
from smart_product.models.tables import RegistrationStatus

logger = logging.getLogger(__name__)


def missing_device(device_id: str) -> NotFoundError:
    return NotFoundError("MissingDevice", f'The device "{device_id}" does not exist.')


class DeviceService:
    def __init__(self, store, gate, registry, transport, settings):
        self.store = store
        self.gate = gate
        self.registry = registry
        self.transport = transport
        self.table = settings.REGISTRATION_TABLE

    async def get_devices(self, ticket) -> List[Dict[str, Any]]:
        """Things tagged with the caller as owner, from the fleet index"""
        try:
            return await self.registry.search_things(f"attributes.userId:{ticket.sub}")
        except TransportError as e:
            logger.error(e)
            logger.error("[DevicesRetrieveFailure] Error occurred while attempting to search devices.")
            raise UpstreamError(
                "DevicesRetrieveFailure", "Error occurred while attempting to search devices."
            ) from e

    async def _registration(self, ticket, device_id: str):
        try:
            return await self.store.get_item(
                self.table, {"userId": ticket.sub, "deviceId": device_id}
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[DeviceRetrieveFailure] Error occurred while attempting to retrieve device {device_id}."
            )
            raise UpstreamError(
                "DeviceRetrieveFailure",
                f'Error occurred while attempting to retrieve device "{device_id}".',
            ) from e

    async def get_device(self, ticket, device_id: str) -> Dict[str, Any]:
        device = await self._registration(ticket, device_id)
        if device is None:
            raise missing_device(device_id)
        return device

    async def delete_device(self, ticket, device_id: str) -> str:
        """
        Soft delete the registration and hard delete the owned thing
        Either may be missing, but not both.
        """
        try:
            device = await self._registration(ticket, device_id)
            if device is not None:
                device["status"] = RegistrationStatus.DELETED.value
                device["updatedAt"] = utc_now()
                await self.store.put_item(self.table, device)

            thing = await self.registry.describe_thing(device_id)
            owned = thing is not None and (thing.get("attributes") or {}).get("userId") == ticket.sub
            if owned:
                await self.registry.delete_thing(device_id)

            if device is None and not owned:
                raise missing_device(device_id)
        except NotFoundError:
            raise
        except (SmartProductError, StoreError, TransportError) as e:
            logger.error(e)
            logger.error(
                f"[DeviceDeleteFailure] Error occurred while attempting to delete device {device_id}."
            )
            raise UpstreamError(
                "DeviceDeleteFailure",
                f'Error occurred while attempting to delete device "{device_id}".',
            ) from e

        logger.info(f"Device {device_id} deleted by user {ticket.sub}")
        return "Delete successful"

    async def get_device_status(self, ticket, device_id: str) -> Dict[str, Any]:
        """Shadow document plus the connectivity flag; {} when no shadow exists yet"""
        await self.gate.require(device_id, ticket.sub)
        try:
            status = await self.transport.get_shadow(device_id)
            things = await self.registry.search_things(f"thingName:{device_id}")
        except ShadowNotFoundError:
            logger.info(f"Device {device_id} has no shadow yet")
            return {}
        except TransportError as e:
            logger.error(e)
            logger.error(
                f"Error occurred while attempting to retrieve status for device {device_id}."
            )
            raise UpstreamError(
                "StatusRetrieveFailure",
                f'Error occurred while attempting to retrieve status for device "{device_id}".',
            ) from e

        status = dict(status)
        status["connected"] = bool(
            things and (things[0].get("connectivity") or {}).get("connected")
        )
        return status
