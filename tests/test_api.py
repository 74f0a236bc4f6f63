"""HTTP tests for the FastAPI application"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from smart_product.main import create_app
from smart_product.services.pagination import encode_token

DEVICE_ID = "device-1"


def bearer(settings, sub="user-1", **claims):
    token = jwt.encode({"sub": sub, **claims}, settings.AUTH_SECRET_KEY, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(settings, services):
    app = create_app(settings)
    app.state.services = services
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth(settings):
    return bearer(settings)


class TestAuthentication:
    """Tests for bearer token handling"""

    def test_missing_token(self, client):
        response = client.get("/devices")

        assert response.status_code == 401
        assert response.json() == {
            "error": "AccessDeniedException",
            "message": "Access denied: missing authorization header.",
        }

    def test_token_signed_with_other_key(self, client):
        token = jwt.encode({"sub": "user-1"}, "other-secret", algorithm="HS256")
        response = client.get("/devices", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert "code" not in response.json()

    def test_token_without_subject(self, client, settings):
        token = jwt.encode({"email": "a@example.com"}, settings.AUTH_SECRET_KEY, algorithm="HS256")
        response = client.get("/devices", headers={"Authorization": token})
        assert response.status_code == 401


class TestRouting:
    """Tests for route resolution and error bodies"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["mqtt_connected"] is True

    def test_event_history_is_not_a_device_id(self, client, auth):
        response = client.get("/devices/events", headers=auth)

        assert response.status_code == 200
        assert response.json() == {
            "Items": [],
            "LastEvaluatedKey": None,
            "deviceId": None,
            "eventType": None,
        }

    def test_alert_count_without_settings(self, client, auth):
        response = client.get("/devices/alerts/count", headers=auth)

        assert response.status_code == 400
        assert response.json() == {
            "code": 400,
            "error": "MissingUserConfig",
            "message": "No user settings found.",
        }

    def test_alert_count(self, client, auth, add_setting):
        asyncio.run(add_setting(alert_level=[]))
        response = client.get("/devices/alerts/count", headers=auth)
        assert response.json() == {"alertsCount": 0}


class TestCommandRoutes:
    """Tests for the command endpoints"""

    body = {
        "commandDetails": {"command": "set-temp", "value": 70},
        "shadowDetails": {"powerStatus": "HEAT", "actualTemperature": 68, "targetTemperature": 70.5},
    }

    def test_create_command(self, client, auth, add_registration, transport):
        asyncio.run(add_registration())

        response = client.post(f"/devices/{DEVICE_ID}/commands", json=self.body, headers=auth)

        assert response.status_code == 201
        assert response.json()["details"] == {"command": "set-temp", "value": "70.5"}
        assert len(transport.published) == 1

    def test_unregistered_device(self, client, auth):
        response = client.post(f"/devices/{DEVICE_ID}/commands", json=self.body, headers=auth)

        assert response.status_code == 400
        assert response.json()["error"] == "MissingRegistration"

    def test_malformed_json(self, client, auth):
        response = client.post(
            f"/devices/{DEVICE_ID}/commands",
            content=b'{"commandDetails": ',
            headers={**auth, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BadRequest"

    def test_list_commands_echoes_status(self, client, auth, add_registration):
        asyncio.run(add_registration())

        response = client.get(
            f"/devices/{DEVICE_ID}/commands", params={"commandStatus": "failed"}, headers=auth
        )

        assert response.status_code == 200
        assert response.json()["commandStatus"] == "failed"

    def test_invalid_continuation_token(self, client, auth, add_registration):
        asyncio.run(add_registration())

        response = client.get(
            f"/devices/{DEVICE_ID}/commands", params={"lastevalkey": "%%%"}, headers=auth
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidParameter"

    def test_continuation_token_round_trip(self, client, auth, add_registration, store, settings):
        asyncio.run(add_registration())
        for i in range(3):
            asyncio.run(
                store.put_item(
                    settings.COMMANDS_TABLE,
                    {
                        "deviceId": DEVICE_ID,
                        "commandId": f"command-{i}",
                        "status": "success",
                        "updatedAt": f"2024-01-0{i + 1}T00:00:00Z",
                    },
                )
            )
        start = encode_token(
            {"deviceId": DEVICE_ID, "commandId": "command-2", "updatedAt": "2024-01-03T00:00:00Z"}
        )

        response = client.get(
            f"/devices/{DEVICE_ID}/commands", params={"lastevalkey": start}, headers=auth
        )

        assert [item["commandId"] for item in response.json()["Items"]] == ["command-1", "command-0"]


class TestDeviceAndSettingRoutes:
    """Tests for the device, registration and settings endpoints"""

    def test_delete_device(self, client, auth, add_registration, registry):
        asyncio.run(add_registration())

        response = client.delete(f"/devices/{DEVICE_ID}", headers=auth)

        assert response.status_code == 200
        assert response.json() == "Delete successful"

    def test_registration_requires_fields(self, client, auth):
        response = client.post("/registration", json={"deviceId": DEVICE_ID}, headers=auth)

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidParameter"

    def test_list_registrations(self, client, auth, add_registration):
        asyncio.run(add_registration())

        response = client.get("/registration", headers=auth)

        assert [row["deviceId"] for row in response.json()] == [DEVICE_ID]

    def test_other_users_setting(self, client, auth, add_setting):
        asyncio.run(add_setting(user_id="user-2"))

        response = client.put(
            "/admin/settings/config/user-2", json={"alertLevel": ["error"]}, headers=auth
        )

        assert response.status_code == 400
        assert response.json()["error"] == "MissingSetting"

    def test_admin_updates_any_setting(self, client, settings, add_setting):
        asyncio.run(add_setting(user_id="user-2"))
        headers = bearer(settings, sub="admin-1", **{"cognito:groups": ["Admins"]})

        response = client.put(
            "/admin/settings/config/user-2", json={"alertLevel": ["error"]}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["setting"] == {"alertLevel": ["error"]}

    def test_sign_up_hook(self, client, settings, store):
        event = {
            "triggerSource": "PostConfirmation_ConfirmSignUp",
            "request": {"userAttributes": {"sub": "user-7"}},
        }
        headers = bearer(settings, sub="trigger", **{"cognito:groups": ["Admins"]})

        response = client.post("/admin/settings/sign-up", json=event, headers=headers)

        assert response.status_code == 200
        assert response.json() == event
        row = asyncio.run(store.get_item(settings.SETTINGS_TABLE, {"settingId": "user-7"}))
        assert row["setting"]["sendNotification"] is False

    def test_sign_up_hook_rejects_plain_users(self, client, auth):
        response = client.post(
            "/admin/settings/sign-up",
            json={"triggerSource": "PostConfirmation_ConfirmSignUp"},
            headers=auth,
        )

        assert response.status_code == 401
        assert response.json()["error"] == "AccessDeniedException"
