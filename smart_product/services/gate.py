"""Registration gate - device ownership checks shared by every service"""

import logging
from typing import Any, Dict, List, Optional

from smart_product.core.errors import StoreError, UpstreamError, missing_registration
from smart_product.models.tables import DEVICE_ID_INDEX, RegistrationStatus
from smart_product.store.conditions import Attr

logger = logging.getLogger(__name__)


def registration_retrieve_failure(device_id: str) -> UpstreamError:
    return UpstreamError(
        "RegistrationRetrieveFailure",
        f'Error occurred while attempting to retrieve registration information for device "{device_id}".',
    )


class RegistrationGate:
    """
    Resolves device <-> owner registrations
    A lookup failure is RegistrationRetrieveFailure; a missing or deleted
    registration is a plain False from is_registered.
    """

    def __init__(self, store, settings):
        self.store = store
        self.table = settings.REGISTRATION_TABLE

    async def get_registration(self, device_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """The (userId, deviceId) row, deleted or not"""
        try:
            return await self.store.get_item(
                self.table, {"userId": user_id, "deviceId": device_id}
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[RegistrationRetrieveFailure] Error occurred while attempting to retrieve registration information for device {device_id}."
            )
            raise registration_retrieve_failure(device_id) from e

    async def is_registered(self, device_id: str, user_id: str) -> bool:
        registration = await self.get_registration(device_id, user_id)
        return (
            registration is not None
            and registration.get("status") != RegistrationStatus.DELETED.value
        )

    async def require(self, device_id: str, user_id: str) -> None:
        """Fail closed with MissingRegistration unless the user owns the device"""
        if not await self.is_registered(device_id, user_id):
            logger.info(f"[MissingRegistration] No registration found for device {device_id}.")
            raise missing_registration(device_id)

    async def active_registrations(self, device_id: str) -> List[Dict[str, Any]]:
        """Non-deleted registrations of a device across all users"""
        try:
            result = await self.store.query(
                self.table,
                device_id,
                index=DEVICE_ID_INDEX,
                filter=Attr("status").ne(RegistrationStatus.DELETED.value),
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[RegistrationRetrieveFailure] Error occurred while attempting to retrieve registration information for device {device_id}."
            )
            raise registration_retrieve_failure(device_id) from e
        return result.items

    async def registrations(
        self, device_id: str, status: Optional[RegistrationStatus] = None
    ) -> List[Dict[str, Any]]:
        """Registrations of a device across all users, optionally in one onboarding state"""
        result = await self.store.query(
            self.table,
            device_id,
            index=DEVICE_ID_INDEX,
            filter=Attr("status").eq(status.value) if status is not None else None,
        )
        return result.items
