"""Device registration (onboarding) workflow"""

import logging
from typing import Any, Dict, List

from smart_product.core.clock import utc_now
from smart_product.core.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    RollbackError,
    SmartProductError,
    StoreError,
    TransportError,
    UpstreamError,
)
from smart_product.models.tables import USER_DEVICE_NAME_INDEX, RegistrationStatus
from smart_product.services.pagination import query_all

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("deviceId", "deviceName", "modelNumber")


class RegistrationService:
    """
    Registers devices to users
    A registration starts pending and becomes complete once the device
    connects with its certificate (see services.jitr). Creating the IoT thing
    is the only step that is compensated: if it fails, the new registration
    row is deleted again.
    """

    def __init__(self, store, gate, registry, metrics, settings):
        self.store = store
        self.gate = gate
        self.registry = registry
        self.metrics = metrics
        self.settings = settings
        self.table = settings.REGISTRATION_TABLE

    async def list_registrations(self, ticket) -> List[Dict[str, Any]]:
        try:
            return await query_all(
                self.store,
                self.table,
                ticket.sub,
                index=USER_DEVICE_NAME_INDEX,
                limit=self.settings.REGISTRATION_QUERY_LIMIT,
            )
        except StoreError as e:
            logger.error(e)
            logger.error("Error occurred while attempting to retrieve registrations.")
            raise UpstreamError("RegistrationListRetrievalFailure", str(e)) from e

    async def create_registration(self, ticket, registration: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(registration, dict) or any(
            not isinstance(registration.get(f), str) or not registration.get(f).strip()
            for f in REQUIRED_FIELDS
        ):
            raise InvalidRequestError(
                "InvalidParameter", "Body parameters are invalid. Please check the API specification."
            )

        device_id = registration["deviceId"]
        try:
            return await self._create(ticket, registration)
        except SmartProductError:
            raise
        except (StoreError, TransportError) as e:
            logger.error(e)
            logger.error(
                f"[RegistrationCreateFailure] Error occurred while attempting to create registration for device {device_id}."
            )
            raise UpstreamError(
                "RegistrationCreateFailure",
                f'Error occurred while attempting to create registration for device "{device_id}".',
            ) from e

    async def _create(self, ticket, registration):
        device_id = registration["deviceId"]
        model_number = registration["modelNumber"]

        # 1. Device must be known to the manufacturer
        reference = await self._reference(device_id, model_number)

        # 2. One active registration per device
        if await self._is_registered(device_id):
            logger.error(f"[DeviceRegisteredFailure] Device {device_id} has been already registered.")
            raise ConflictError(
                "DeviceRegisteredFailure",
                f'Device with serial number "{device_id}" has been already registered.',
            )

        # 3. Pending registration row
        now = utc_now()
        row = {
            "deviceId": device_id,
            "deviceName": registration["deviceName"],
            "modelNumber": model_number,
            "details": reference.get("details"),
            "status": RegistrationStatus.PENDING.value,
            "userId": ticket.sub,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.store.put_item(self.table, row)

        # 4. Thing, rolled back on failure
        try:
            await self.registry.create_thing(row)
        except TransportError as e:
            logger.error(e)
            logger.error(
                f'[CreateThingFailure] Error occurred while attempting to create thing for device "{device_id}".'
            )
            create_error = UpstreamError(
                "CreateThingFailure",
                f'Error occurred while attempting to create thing for device "{device_id}".',
            )
            await self._rollback(ticket.sub, device_id, create_error)
            raise create_error from e

        await self.metrics.send({"Registrations": 1})
        logger.info(f"Device {device_id} registered to user {ticket.sub}")
        return row

    async def _reference(self, device_id: str, model_number: str) -> Dict[str, Any]:
        try:
            reference = await self.store.get_item(
                self.settings.REFERENCE_TABLE,
                {"deviceId": device_id, "modelNumber": model_number},
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[RetrieveReferenceFailure] Error occurred while retrieving device: deviceId {device_id}, modelNumber {model_number}."
            )
            raise UpstreamError(
                "RetrieveReferenceFailure",
                f'Error occurred while retrieving device: deviceId "{device_id}", modelNumber "{model_number}".',
            ) from e

        if reference is None:
            logger.info(f"[DeviceNotFoundFailure] No manufacturer info for {device_id}/{model_number}")
            raise NotFoundError(
                "DeviceNotFoundFailure",
                f'Manufacturer info cannot be found for serial number "{device_id}" and model number "{model_number}". '
                "Please add a model number/serial number that is supported by the manufacturer.",
            )
        return reference

    async def _is_registered(self, device_id: str) -> bool:
        try:
            rows = await self.gate.registrations(device_id)
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[RetrieveRegistrationFailure] Error occurred while retrieving device {device_id}."
            )
            raise UpstreamError(
                "RetrieveRegistrationFailure",
                f'Error occurred while retrieving device "{device_id}".',
            ) from e
        return any(r.get("status") != RegistrationStatus.DELETED.value for r in rows)

    async def _rollback(self, user_id: str, device_id: str, cause: SmartProductError):
        try:
            await self.store.delete_item(self.table, {"userId": user_id, "deviceId": device_id})
        except StoreError as e:
            logger.critical(e)
            logger.critical(
                f"[DeviceRollBackFailure] Error occurred while rolling back the device {device_id} registration "
                f"after {cause.error}."
            )
            raise RollbackError(
                "DeviceRollBackFailure",
                f'Error occurred while rolling back the device "{device_id}" registration.',
            ) from e
        logger.info(f"Rolled back registration of device {device_id}")
