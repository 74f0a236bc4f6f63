"""Tests for command validation and the command engine"""

import pytest

from smart_product.core.errors import (
    InvalidRequestError,
    NotFoundError,
    StoreError,
    UpstreamError,
)
from smart_product.services.commands import normalize_temperature, validate_command

DEVICE_ID = "device-1"


def command_body(command="set-temp", value=70, target=70.5, power="HEAT", actual=68):
    return {
        "commandDetails": {"command": command, "value": value},
        "shadowDetails": {
            "powerStatus": power,
            "actualTemperature": actual,
            "targetTemperature": target,
        },
    }


class TestNormalizeTemperature:
    """Tests for 2-place rounding with integer collapse"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (70, "70"),
            (70.00, "70"),
            ("70.00", "70"),
            (70.10, "70.1"),
            ("70.1", "70.1"),
            (70.5, "70.5"),
            (72.125, "72.13"),
            (72.499, "72.5"),
        ],
    )
    def test_normalizes(self, value, expected):
        assert normalize_temperature(value) == expected

    @pytest.mark.parametrize("value", ["70", "70.1", "72.13"])
    def test_normalized_value_is_fixed_point(self, value):
        assert normalize_temperature(normalize_temperature(value)) == value

    @pytest.mark.parametrize("value", ["warm", None, True, "NaN", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            normalize_temperature(value)


class TestValidateCommand:
    """Tests for command body validation"""

    def test_set_temp_uses_normalized_target(self):
        """value and targetTemperature both become the normalized target"""
        result = validate_command(command_body(value=70, target=70.5))

        assert result["details"] == {"command": "set-temp", "value": "70.5"}
        assert result["shadow"] == {
            "powerStatus": "HEAT",
            "actualTemperature": 68,
            "targetTemperature": "70.5",
        }

    @pytest.mark.parametrize("target", [50, 110, "50", 75.25])
    def test_accepts_range_bounds(self, target):
        validate_command(command_body(target=target))

    @pytest.mark.parametrize("target", [49.99, 110.01, "hot", None])
    def test_rejects_out_of_range_target(self, target):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_command(command_body(target=target))
        assert exc_info.value.error == "InvalidParameter"

    def test_set_temp_requires_numeric_value(self):
        with pytest.raises(InvalidRequestError):
            validate_command(command_body(value="warmer"))

    def test_set_mode_keeps_value(self):
        result = validate_command(command_body(command="set-mode", value="AC", power="AC"))
        assert result["details"] == {"command": "set-mode", "value": "AC"}
        assert result["shadow"]["targetTemperature"] == 70.5

    @pytest.mark.parametrize(
        "body",
        [
            None,
            [],
            {},
            {"commandDetails": {"command": "set-temp", "value": 70}},
            command_body(command="reboot"),
            command_body(power="FAN"),
        ],
    )
    def test_rejects_malformed_bodies(self, body):
        with pytest.raises(InvalidRequestError):
            validate_command(body)


@pytest.mark.asyncio
class TestCreateCommand:
    """Tests for CommandService.create_command"""

    async def test_creates_pending_command_and_pushes_to_device(
        self, services, ticket, transport, metrics, store, settings, add_registration
    ):
        await add_registration()

        command = await services.commands.create_command(ticket, DEVICE_ID, command_body())

        assert command["status"] == "pending"
        assert command["details"] == {"command": "set-temp", "value": "70.5"}
        assert command["userId"] == ticket.sub
        assert command["createdAt"] == command["updatedAt"]

        stored = await store.get_item(
            settings.COMMANDS_TABLE, {"deviceId": DEVICE_ID, "commandId": command["commandId"]}
        )
        assert stored == command
        assert transport.shadows[DEVICE_ID]["desired"]["targetTemperature"] == "70.5"

        topic, message = transport.published[0]
        assert topic == f"{settings.COMMAND_TOPIC}/{DEVICE_ID}"
        assert message["commandId"] == command["commandId"]
        assert message["details"]["powerStatus"] == "HEAT"
        metrics.send.assert_awaited_once_with({"RemoteCommands": 1})

    async def test_unregistered_device_is_rejected_without_mutation(
        self, services, ticket, transport, store, settings
    ):
        with pytest.raises(NotFoundError) as exc_info:
            await services.commands.create_command(ticket, DEVICE_ID, command_body())

        assert exc_info.value.error == "MissingRegistration"
        result = await store.query(settings.COMMANDS_TABLE, DEVICE_ID)
        assert result.items == []
        assert transport.shadows == {}
        assert transport.published == []

    async def test_deleted_registration_is_rejected(self, services, ticket, add_registration):
        await add_registration(status="deleted")
        with pytest.raises(NotFoundError):
            await services.commands.create_command(ticket, DEVICE_ID, command_body())

    async def test_other_users_device_is_rejected(self, services, ticket, add_registration):
        await add_registration(user_id="someone-else")
        with pytest.raises(NotFoundError):
            await services.commands.create_command(ticket, DEVICE_ID, command_body())

    async def test_invalid_body_checked_before_registration(self, services, ticket):
        with pytest.raises(InvalidRequestError):
            await services.commands.create_command(ticket, DEVICE_ID, command_body(target=200))

    async def test_shadow_failure_keeps_pending_row(
        self, services, ticket, transport, metrics, store, settings, add_registration
    ):
        """The command row is not rolled back when the device push fails"""
        await add_registration()
        transport.fail_update = True

        with pytest.raises(UpstreamError) as exc_info:
            await services.commands.create_command(ticket, DEVICE_ID, command_body())

        assert exc_info.value.error == "CommandCreateFailure"
        result = await store.query(settings.COMMANDS_TABLE, DEVICE_ID)
        assert [item["status"] for item in result.items] == ["pending"]
        assert transport.published == []
        metrics.send.assert_not_awaited()

    async def test_publish_failure_is_command_create_failure(
        self, services, ticket, transport, add_registration
    ):
        await add_registration()
        transport.fail_publish = True

        with pytest.raises(UpstreamError) as exc_info:
            await services.commands.create_command(ticket, DEVICE_ID, command_body())
        assert exc_info.value.error == "CommandCreateFailure"

    async def test_existing_shadow_is_updated(self, services, ticket, transport, add_registration):
        await add_registration()
        transport.shadows[DEVICE_ID] = {"reported": {"powerStatus": "OFF"}}

        await services.commands.create_command(ticket, DEVICE_ID, command_body(power="AC"))

        assert transport.shadows[DEVICE_ID]["desired"]["powerStatus"] == "AC"
        assert transport.shadows[DEVICE_ID]["reported"] == {"powerStatus": "OFF"}


@pytest.mark.asyncio
class TestReadCommands:
    """Tests for command listing and lookup"""

    async def test_lists_newest_first_with_status_filter(
        self, services, ticket, store, settings, add_registration
    ):
        await add_registration()
        for i, status in enumerate(["success", "failed", "success"]):
            await store.put_item(
                settings.COMMANDS_TABLE,
                {
                    "deviceId": DEVICE_ID,
                    "commandId": f"command-{i}",
                    "status": status,
                    "updatedAt": f"2024-01-0{i + 1}T00:00:00Z",
                },
            )

        page = await services.commands.get_commands(ticket, DEVICE_ID, command_status="success")

        assert [item["commandId"] for item in page.items] == ["command-2", "command-0"]
        body = page.to_dict()
        assert body["commandStatus"] == "success"
        assert body["LastEvaluatedKey"] is None

    async def test_list_requires_registration(self, services, ticket):
        with pytest.raises(NotFoundError):
            await services.commands.get_commands(ticket, DEVICE_ID)

    async def test_bad_token_is_invalid_parameter(self, services, ticket, add_registration):
        await add_registration()
        with pytest.raises(InvalidRequestError):
            await services.commands.get_commands(ticket, DEVICE_ID, lastevalkey="%%%")

    async def test_get_missing_command(self, services, ticket, add_registration):
        await add_registration()
        with pytest.raises(NotFoundError) as exc_info:
            await services.commands.get_command(ticket, DEVICE_ID, "nope")
        assert exc_info.value.error == "MissingCommand"

    async def test_store_failure_is_command_retrieve_failure(
        self, services, ticket, store, add_registration, monkeypatch
    ):
        await add_registration()
        original_get = store.get_item

        async def failing_get(table, key):
            if table == services.settings.COMMANDS_TABLE:
                raise StoreError("boom")
            return await original_get(table, key)

        monkeypatch.setattr(store, "get_item", failing_get)

        with pytest.raises(UpstreamError) as exc_info:
            await services.commands.get_command(ticket, DEVICE_ID, "command-1")
        assert exc_info.value.error == "CommandRetrieveFailure"


@pytest.mark.asyncio
class TestUpdateStatus:
    """Tests for device status replies"""

    async def test_applies_reply(self, services, store, settings):
        key = {"deviceId": DEVICE_ID, "commandId": "command-1"}
        await store.put_item(settings.COMMANDS_TABLE, dict(key, status="pending"))

        updated = await services.commands.update_status(
            {"deviceId": DEVICE_ID, "commandId": "command-1", "status": "failed", "reason": "busy"}
        )

        assert updated["status"] == "failed"
        stored = await store.get_item(settings.COMMANDS_TABLE, key)
        assert stored["reason"] == "busy"

    async def test_skips_pending_echo(self, services, store, settings):
        result = await services.commands.update_status(
            {"deviceId": DEVICE_ID, "commandId": "command-1", "status": "pending"}
        )
        assert result is None
        assert (await store.query(settings.COMMANDS_TABLE, DEVICE_ID)).items == []

    async def test_reply_without_ids_fails(self, services):
        with pytest.raises(UpstreamError) as exc_info:
            await services.commands.update_status({"status": "success"})
        assert exc_info.value.error == "StatusUpdateFailure"
