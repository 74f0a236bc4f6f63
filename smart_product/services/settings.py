"""Per-user alert settings"""

import logging
from typing import Any, Dict

from smart_product.core.clock import utc_now
from smart_product.core.errors import (
    AccessDeniedError,
    InvalidRequestError,
    NotFoundError,
    StoreError,
    UpstreamError,
)
from smart_product.models.tables import EventType

logger = logging.getLogger(__name__)

CONFIRM_SIGN_UP = "PostConfirmation_ConfirmSignUp"

DEFAULT_SETTING = {
    "alertLevel": [EventType.ERROR.value, EventType.WARNING.value],
    "sendNotification": False,
}


class SettingsService:
    """Settings rows are keyed by ``settingId``, which is the owner's user id"""

    def __init__(self, store, settings):
        self.store = store
        self.table = settings.SETTINGS_TABLE
        self.admin_group = settings.ADMIN_GROUP

    def authorize(self, ticket, setting_id: str) -> None:
        if setting_id != ticket.sub and not ticket.in_group(self.admin_group):
            logger.info(f"[MissingSetting] User {ticket.sub} asked for setting {setting_id}")
            raise NotFoundError("MissingSetting", f"The setting {setting_id} does not exist.")

    async def _get(self, setting_id: str):
        try:
            return await self.store.get_item(self.table, {"settingId": setting_id})
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "SettingRetrievalFailure",
                f"Error occurred while attempting to retrieve the setting {setting_id}.",
            ) from e

    async def get_setting(self, ticket, setting_id: str) -> Dict[str, Any]:
        self.authorize(ticket, setting_id)
        row = await self._get(setting_id)
        if row is None:
            raise NotFoundError("MissingSetting", f"The setting {setting_id} does not exist.")
        return row

    async def update_setting(self, ticket, setting_id: str, setting: Any) -> Dict[str, Any]:
        """Replace the ``setting`` document of an existing row"""
        self.authorize(ticket, setting_id)
        if not setting:
            raise InvalidRequestError(
                "InvalidSetting", f"The requested setting is invalid: {setting!r}"
            )

        row = await self._get(setting_id)
        if row is None:
            raise NotFoundError(
                "MissingSetting", f"The requested setting {setting_id} does not exist."
            )

        row["setting"] = setting
        row["updatedAt"] = utc_now()
        try:
            await self.store.put_item(self.table, row)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "SettingUpdateFailure",
                f"Error occurred while attempting to update setting {setting_id}.",
            ) from e
        return row

    async def create_default_setting(self, user_id: str) -> Dict[str, Any]:
        """Seed the settings of a newly confirmed user"""
        now = utc_now()
        row = {
            "settingId": user_id,
            "setting": {**DEFAULT_SETTING, "alertLevel": list(DEFAULT_SETTING["alertLevel"])},
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.store.put_item(self.table, row)
        except StoreError as e:
            logger.error(f"Error occurred while processing the sign-up confirmation: {e}")
            raise UpstreamError(
                "SettingCreateFailure",
                f"Error occurred while attempting to create setting {user_id}.",
            ) from e
        logger.info(f"Success to process the setting: {user_id}.")
        return row

    async def confirm_sign_up(self, ticket, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle the user pool's post-confirmation trigger
        Only callers in the admin group may forward it. A confirmed sign-up
        seeds the new user's settings; every other trigger source is returned
        untouched.
        """
        if not ticket.in_group(self.admin_group):
            logger.info(f"[AccessDeniedException] User {ticket.sub} forwarded a sign-up trigger")
            raise AccessDeniedError("Access denied: sign-up triggers need the admin group.")
        if not isinstance(event, dict):
            raise InvalidRequestError("InvalidParameter", "The sign-up trigger must be an object.")

        if event.get("triggerSource") == CONFIRM_SIGN_UP:
            try:
                user_id = event["request"]["userAttributes"]["sub"]
            except (KeyError, TypeError) as e:
                raise InvalidRequestError(
                    "InvalidParameter", "The sign-up trigger has no user sub."
                ) from e
            await self.create_default_setting(user_id)
        return event
