"""Device events: ingestion, per-device listings, history and acknowledgement"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from smart_product.core.clock import epoch_millis, utc_now
from smart_product.core.errors import (
    InvalidRequestError,
    NotFoundError,
    StoreError,
    UpstreamError,
    missing_registration,
)
from smart_product.models.tables import DEVICE_TIMESTAMP_INDEX, USER_TIMESTAMP_INDEX
from smart_product.services.pagination import Page, decode_token, query_all, query_page
from smart_product.store.conditions import Attr

logger = logging.getLogger(__name__)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class EventService:
    """Read and acknowledge the events raised by a user's devices"""

    def __init__(self, store, gate, settings):
        self.store = store
        self.gate = gate
        self.settings = settings
        self.table = settings.EVENTS_TABLE

    async def _page(self, hash_value, index, filter, start_key) -> Page:
        return await query_page(
            self.store,
            self.table,
            hash_value,
            index=index,
            filter=filter,
            start_key=start_key,
            scan_forward=False,
            limit=self.settings.QUERY_LIMIT,
            page_min=self.settings.PAGE_MIN,
            max_iterations=self.settings.PAGE_MAX_ITERATIONS,
        )

    async def create_event(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a device-originated event
        The owner is resolved from the device's active registration; a
        userId in the message itself is never trusted.
        """
        device_id = message.get("deviceId")
        registrations = await self.gate.active_registrations(device_id)
        if not registrations:
            logger.info(f"[MissingRegistration] No registration found for device {device_id}.")
            raise missing_registration(device_id)
        if len(registrations) > 1:
            logger.error(f"[RegistrationRetrieveFailure] Multiple records found for device {device_id}.")
            raise UpstreamError(
                "RegistrationRetrieveFailure",
                f"Multiple records found for device {device_id}.",
                code=400,
            )

        now = utc_now()
        event = dict(message)
        event.update(
            {
                "id": str(uuid.uuid4()),
                "userId": registrations[0]["userId"],
                "createdAt": now,
                "updatedAt": now,
                "ack": False,
                "suppress": False,
            }
        )
        event.setdefault("timestamp", epoch_millis())

        try:
            await self.store.put_item(self.table, event)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "EventCreateFailure",
                f"Error occurred while attempting to create event message for device {device_id}.",
            ) from e
        return event

    async def get_events(
        self,
        ticket,
        device_id: str,
        lastevalkey: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Page:
        start_key = decode_token(lastevalkey)
        await self.gate.require(device_id, ticket.sub)

        type_filter = None if _blank(event_type) else Attr("type").eq(event_type.strip())
        try:
            page = await self._page(device_id, DEVICE_TIMESTAMP_INDEX, type_filter, start_key)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "EventQueryFailure",
                f'Error occurred while attempting to retrieve events for device "{device_id}".',
            ) from e

        page.filters["eventType"] = event_type
        return page

    async def get_event(self, ticket, device_id: str, event_id: str) -> Dict[str, Any]:
        await self.gate.require(device_id, ticket.sub)
        return await self._load(device_id, event_id)

    async def _load(self, device_id: str, event_id: str) -> Dict[str, Any]:
        try:
            event = await self.store.get_item(self.table, {"deviceId": device_id, "id": event_id})
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"Error occurred while attempting to retrieve event {event_id} for device {device_id}."
            )
            raise UpstreamError(
                "EventRetrieveFailure",
                f'Error occurred while attempting to retrieve event "{event_id}" for device "{device_id}".',
            ) from e

        if event is None:
            raise NotFoundError(
                "MissingEvent", f'The event "{event_id}" for device "{device_id}" does not exist.'
            )
        return event

    async def update_event(
        self, ticket, device_id: str, event_id: str, changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Acknowledge and/or suppress an event; absent flags reset to false"""
        if changes is None:
            changes = {}
        flags = {}
        if isinstance(changes, dict):
            flags = {flag: changes.get(flag, False) for flag in ("ack", "suppress")}
        if not flags or not all(isinstance(value, bool) for value in flags.values()):
            logger.info(f"[InvalidParameter] Rejected event update body: {changes!r}")
            raise InvalidRequestError(
                "InvalidParameter", "Body parameters are invalid. Please check the API specification."
            )
        await self.gate.require(device_id, ticket.sub)
        event = await self._load(device_id, event_id)

        event["ack"] = flags["ack"]
        event["suppress"] = flags["suppress"]
        event["updatedAt"] = utc_now()
        try:
            await self.store.put_item(self.table, event)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "EventUpdateFailure",
                f'The event "{event_id}" for device "{device_id}" failed to update.',
            ) from e
        return event

    async def get_event_history(
        self,
        ticket,
        lastevalkey: Optional[str] = None,
        device_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Page:
        """Events across every device of the caller, newest first"""
        start_key = decode_token(lastevalkey)

        history_filter = None
        if not _blank(device_id):
            history_filter = Attr("deviceId").eq(device_id.strip())
        if not _blank(event_type):
            type_filter = Attr("type").eq(event_type.strip())
            history_filter = type_filter if history_filter is None else history_filter & type_filter

        try:
            page = await self._page(ticket.sub, USER_TIMESTAMP_INDEX, history_filter, start_key)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "EventHistoryQueryFailure",
                "Error occurred while attempting to retrieve event history.",
            ) from e

        page.items = await attach_device_names(self.store, self.settings, ticket.sub, page.items)
        page.filters.update({"deviceId": device_id, "eventType": event_type})
        return page


async def attach_device_names(
    store, settings, user_id: str, items: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Join ``deviceName`` from the user's registrations onto each item"""
    try:
        registrations = await query_all(
            store,
            settings.REGISTRATION_TABLE,
            user_id,
            limit=settings.REGISTRATION_QUERY_LIMIT,
        )
    except StoreError as e:
        logger.error(e)
        raise UpstreamError(
            "UserDevicesQueryFailure", "Error occurred while attempting to retrieve devices."
        ) from e

    names = {r["deviceId"]: r.get("deviceName") for r in registrations}
    for item in items:
        if item.get("deviceId") in names:
            item["deviceName"] = names[item["deviceId"]]
    return items
