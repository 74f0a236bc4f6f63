"""Event alerts: unacknowledged events of the types a user subscribed to"""

import logging
from typing import Any, Dict, List, Optional

from smart_product.core.errors import (
    NotFoundError,
    SmartProductError,
    StoreError,
    TransportError,
    UpstreamError,
    missing_registration,
)
from smart_product.models.tables import USER_TIMESTAMP_INDEX
from smart_product.services.events import attach_device_names
from smart_product.services.pagination import Page, count_all, decode_token, query_page
from smart_product.store.conditions import Attr, any_of

logger = logging.getLogger(__name__)

ALERT_TEMPLATE = (
    "** Smart Product Event Alert **\n"
    "You have a new {type} event.\n\n"
    "* Device: {deviceName}\n"
    "* Time: {createdAt}\n"
    "* Message: {message}\n"
    "* Value: {value}"
)


def missing_user_config() -> NotFoundError:
    return NotFoundError("MissingUserConfig", "No user settings found.")


def alert_filter(alert_level: List[str], device_id: Optional[str] = None):
    condition = Attr("ack").eq(False) & any_of("type", alert_level)
    if device_id is not None and device_id.strip():
        condition = condition & Attr("deviceId").eq(device_id.strip())
    return condition


def format_alert(event: Dict[str, Any], device_name: str) -> str:
    details = event.get("details") or {}
    return ALERT_TEMPLATE.format(
        type=event.get("type"),
        deviceName=device_name,
        createdAt=event.get("createdAt"),
        message=event.get("message"),
        value=details.get("value") if isinstance(details, dict) else None,
    )


class AlertService:
    """Alert listings for the console and SMS delivery for new events"""

    def __init__(self, store, gate, identity, notifier, settings):
        self.store = store
        self.gate = gate
        self.identity = identity
        self.notifier = notifier
        self.settings = settings
        self.table = settings.EVENTS_TABLE

    async def user_setting(self, user_id: str) -> Optional[Dict[str, Any]]:
        """The user's ``setting`` document, None when the user has none"""
        try:
            row = await self.store.get_item(self.settings.SETTINGS_TABLE, {"settingId": user_id})
        except StoreError as e:
            logger.error(e)
            logger.error(
                "[SettingsRetrieveFailure] Error occurred while attempting to retrieve settings information."
            )
            raise UpstreamError(
                "SettingsRetrieveFailure",
                "Error occurred while attempting to retrieve settings information.",
            ) from e
        if row is None:
            return None
        return row.get("setting") or {}

    async def alert_level(self, user_id: str) -> List[str]:
        setting = await self.user_setting(user_id)
        if setting is None:
            logger.info("[MissingUserConfig] No user settings found.")
            raise missing_user_config()
        return list(setting.get("alertLevel") or [])

    async def get_alerts(
        self, ticket, lastevalkey: Optional[str] = None, device_id: Optional[str] = None
    ) -> Page:
        start_key = decode_token(lastevalkey)
        alert_level = await self.alert_level(ticket.sub)

        # Nothing subscribed, nothing to look for
        if not alert_level:
            return Page(items=[], filters={"deviceId": device_id})

        try:
            page = await query_page(
                self.store,
                self.table,
                ticket.sub,
                index=USER_TIMESTAMP_INDEX,
                filter=alert_filter(alert_level, device_id),
                start_key=start_key,
                scan_forward=False,
                limit=self.settings.QUERY_LIMIT,
                page_min=self.settings.PAGE_MIN,
                max_iterations=self.settings.PAGE_MAX_ITERATIONS,
            )
        except StoreError as e:
            logger.error(e)
            logger.error("Error occurred while attempting to retrieve event alerts.")
            raise UpstreamError(
                "AlertQueryFailure", "Error occurred while attempting to retrieve event alerts."
            ) from e

        page.items = await attach_device_names(self.store, self.settings, ticket.sub, page.items)
        page.filters["deviceId"] = device_id
        return page

    async def get_alerts_count(self, ticket) -> Dict[str, int]:
        alert_level = await self.alert_level(ticket.sub)
        if not alert_level:
            return {"alertsCount": 0}

        try:
            count = await count_all(
                self.store,
                self.table,
                ticket.sub,
                index=USER_TIMESTAMP_INDEX,
                filter=alert_filter(alert_level),
                limit=self.settings.COUNT_QUERY_LIMIT,
            )
        except StoreError as e:
            logger.error(e)
            logger.error("Error occurred while attempting to get the count of event alerts.")
            raise UpstreamError(
                "AlertRetrieveFailure",
                "Error occurred while attempting to get the count of event alerts.",
            ) from e
        return {"alertsCount": count}

    async def send_alert(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Text the device owner about a new event
        Missing registration, phone number or settings are reported as such;
        any other failure is SendAlertFailure. An event the owner did not
        subscribe to is a successful "not sent" result.
        """
        device_id = event.get("deviceId")
        event_type = event.get("type")
        not_sent = {
            "code": 200,
            "message": f'alert not sent for device "{device_id}" event type "{event_type}".',
        }

        try:
            registrations = await self.gate.active_registrations(device_id)
            if not registrations:
                logger.info(f"[MissingRegistration] No registration found for device {device_id}.")
                raise missing_registration(device_id)
            registration = registrations[0]
            user_id = registration["userId"]

            phone_number = await self.identity.phone_number(user_id)
            if not phone_number:
                logger.info("[MissingPhoneNumber] No phone number found.")
                raise NotFoundError("MissingPhoneNumber", "No phone number found.")

            setting = await self.user_setting(user_id)
            if setting is None:
                logger.info("[MissingUserConfig] No user settings found.")
                raise missing_user_config()

            if not setting.get("sendNotification"):
                return not_sent
            if event_type not in (setting.get("alertLevel") or []):
                return not_sent

            await self.notifier.send_sms(
                phone_number, format_alert(event, registration.get("deviceName"))
            )
        except NotFoundError:
            raise
        except (SmartProductError, StoreError, TransportError) as e:
            logger.error(e)
            logger.error(
                f"[SendAlertFailure] Error occurred while attempting to send event alert for device {device_id}."
            )
            raise UpstreamError(
                "SendAlertFailure",
                f'Error occurred while attempting to send event alert for device "{device_id}".',
            ) from e

        logger.info(f"Alert sent for device {device_id}")
        return {"code": 200, "message": f'alert sent for device "{device_id}".'}
