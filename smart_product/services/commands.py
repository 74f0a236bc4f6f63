"""Device command engine

A command is persisted as ``pending``, then pushed to the device by
updating the desired state of its shadow and publishing it on the device
command topic. The command row is not rolled back when the shadow update
or the publish fails; it stays ``pending`` and the caller gets
CommandCreateFailure.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from smart_product.core.clock import utc_now
from smart_product.core.errors import (
    InvalidRequestError,
    NotFoundError,
    ShadowNotFoundError,
    StoreError,
    TransportError,
    UpstreamError,
)
from smart_product.models.tables import DEVICE_UPDATED_AT_INDEX, CommandStatus
from smart_product.services.pagination import Page, decode_token, query_page
from smart_product.store.conditions import Attr

logger = logging.getLogger(__name__)

MIN_TEMPERATURE = 50
MAX_TEMPERATURE = 110
TWO_PLACES = Decimal("0.01")


class CommandDetails(BaseModel):
    command: Literal["set-temp", "set-mode"]
    value: Any = None


class ShadowDetails(BaseModel):
    powerStatus: Literal["HEAT", "AC", "OFF"]
    actualTemperature: Any = None
    targetTemperature: Decimal = Field(ge=MIN_TEMPERATURE, le=MAX_TEMPERATURE)


class CommandRequest(BaseModel):
    """Body of POST /devices/{deviceId}/commands"""

    commandDetails: CommandDetails
    shadowDetails: ShadowDetails


def invalid_command() -> InvalidRequestError:
    return InvalidRequestError(
        "InvalidParameter", "Body parameters are invalid. Please check the API specification."
    )


def normalize_temperature(value) -> str:
    """
    Round a temperature to 2 decimal places
    Whole numbers collapse to an integer string: 70.00 -> "70", 70.10 -> "70.1"
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a temperature: {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a temperature: {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"Not a temperature: {value!r}")

    number = number.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if number == number.to_integral_value():
        return str(number.to_integral_value())
    return format(number.normalize(), "f")


def validate_command(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a command body and normalize set-temp values
    Returns:
        dict with ``details`` for the command row and ``shadow`` for the
        desired shadow state
    """
    try:
        request = CommandRequest.model_validate(payload)
    except ValidationError as e:
        logger.info(f"[InvalidParameter] Rejected command body: {e.error_count()} errors")
        raise invalid_command() from e

    raw_shadow = payload["shadowDetails"]
    details = {
        "command": request.commandDetails.command,
        "value": request.commandDetails.value,
    }
    shadow = {
        "powerStatus": request.shadowDetails.powerStatus,
        "actualTemperature": raw_shadow.get("actualTemperature"),
        "targetTemperature": raw_shadow.get("targetTemperature"),
    }

    if details["command"] == "set-temp":
        try:
            normalize_temperature(details["value"])
            target = normalize_temperature(request.shadowDetails.targetTemperature)
        except ValueError as e:
            logger.info(f"[InvalidParameter] {e}")
            raise invalid_command() from e
        details["value"] = target
        shadow["targetTemperature"] = target

    return {"details": details, "shadow": shadow}


class CommandService:
    """Create and read device commands"""

    def __init__(self, store, gate, transport, metrics, settings):
        self.store = store
        self.gate = gate
        self.transport = transport
        self.metrics = metrics
        self.settings = settings
        self.table = settings.COMMANDS_TABLE

    def command_topic(self, device_id: str) -> str:
        return f"{self.settings.COMMAND_TOPIC}/{device_id}"

    async def create_command(self, ticket, device_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        command_request = validate_command(payload)
        await self.gate.require(device_id, ticket.sub)

        now = utc_now()
        command = {
            "commandId": str(uuid.uuid4()),
            "deviceId": device_id,
            "status": CommandStatus.PENDING.value,
            "details": command_request["details"],
            "userId": ticket.sub,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            await self.store.put_item(self.table, command)
            await self._update_shadow(command, command_request["shadow"])
            await self._publish(command, command_request["shadow"])
        except (StoreError, TransportError) as e:
            logger.error(e)
            logger.error(
                f"[CommandCreateFailure] Error occurred while attempting to create command for device {device_id}."
            )
            raise UpstreamError(
                "CommandCreateFailure",
                f'Error occurred while attempting to create command for device "{device_id}".',
            ) from e

        await self.metrics.send({"RemoteCommands": 1})
        logger.info(f"Command {command['commandId']} created for device {device_id}")
        return command

    async def _update_shadow(self, command: Dict[str, Any], shadow: Dict[str, Any]):
        device_id = command["deviceId"]
        try:
            try:
                await self.transport.get_shadow(device_id)
            except ShadowNotFoundError:
                logger.info(f"Device {device_id} has no shadow yet")
            await self.transport.update_shadow(device_id, shadow)
        except TransportError:
            logger.error(
                f"[DeviceShadowUpdateFailure] Error occurred while attempting to update device shadow for command {device_id}."
            )
            raise

    async def _publish(self, command: Dict[str, Any], shadow: Dict[str, Any]):
        message = {
            "commandId": command["commandId"],
            "deviceId": command["deviceId"],
            "status": command["status"],
            "details": shadow,
        }
        try:
            await self.transport.publish(self.command_topic(command["deviceId"]), message)
        except TransportError:
            logger.error(
                f"[CommandPublishFailure] Error occurred while attempting to publish command {command['commandId']}."
            )
            raise

    async def get_commands(
        self,
        ticket,
        device_id: str,
        lastevalkey: Optional[str] = None,
        command_status: Optional[str] = None,
    ) -> Page:
        start_key = decode_token(lastevalkey)
        await self.gate.require(device_id, ticket.sub)

        status_filter = None
        if command_status is not None and command_status.strip():
            status_filter = Attr("status").eq(command_status.strip())

        try:
            page = await query_page(
                self.store,
                self.table,
                device_id,
                index=DEVICE_UPDATED_AT_INDEX,
                filter=status_filter,
                start_key=start_key,
                scan_forward=False,
                limit=self.settings.QUERY_LIMIT,
                page_min=self.settings.PAGE_MIN,
                max_iterations=self.settings.PAGE_MAX_ITERATIONS,
            )
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "CommandQueryFailure",
                f'Error occurred while attempting to retrieve commands for device "{device_id}".',
            ) from e

        page.filters["commandStatus"] = command_status
        return page

    async def get_command(self, ticket, device_id: str, command_id: str) -> Dict[str, Any]:
        await self.gate.require(device_id, ticket.sub)
        try:
            command = await self.store.get_item(
                self.table, {"deviceId": device_id, "commandId": command_id}
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"Error occurred while attempting to retrieve command {command_id} for device {device_id}."
            )
            raise UpstreamError(
                "CommandRetrieveFailure",
                f'Error occurred while attempting to retrieve command "{command_id}" for device "{device_id}".',
            ) from e

        if command is None:
            raise NotFoundError(
                "MissingCommand",
                f'The command "{command_id}" for device "{device_id}" does not exist.',
            )
        return command

    async def update_status(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a status reply sent by a device on its command topic
        Messages still marked pending are this service's own publications
        echoed back by the broker and are skipped.
        """
        if message.get("status") in (None, CommandStatus.PENDING.value):
            return None

        device_id = message.get("deviceId")
        command_id = message.get("commandId")
        try:
            if not device_id or not command_id:
                raise ValueError("status reply without deviceId or commandId")
            return await self.store.update_item(
                self.table,
                {"deviceId": device_id, "commandId": command_id},
                {
                    "status": message["status"],
                    "reason": message.get("reason"),
                    "updatedAt": utc_now(),
                },
            )
        except (StoreError, ValueError) as e:
            logger.error(e)
            raise UpstreamError(
                "StatusUpdateFailure",
                f"Error occurred while updating command status for device {device_id} command {command_id}.",
            ) from e
