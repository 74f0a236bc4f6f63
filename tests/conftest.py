"""Shared fixtures: in-memory store, fake device transport and AWS collaborators"""

from unittest.mock import AsyncMock

import pytest

from smart_product.core.config import Settings
from smart_product.core.deps import build_services
from smart_product.core.errors import ShadowNotFoundError, TransportError
from smart_product.core.security import Ticket
from smart_product.models.tables import build_tables
from smart_product.services.transport import DeviceTransport
from smart_product.store.memory import MemoryStore

USER_ID = "user-1"
DEVICE_ID = "device-1"


class FakeTransport(DeviceTransport):
    """Records shadow writes and publications instead of talking to a broker"""

    def __init__(self):
        self.shadows = {}
        self.published = []
        self.fail_update = False
        self.fail_publish = False
        self.connected = True

    async def get_shadow(self, thing_name):
        if thing_name not in self.shadows:
            raise ShadowNotFoundError(f"No shadow for {thing_name}")
        return {"state": self.shadows[thing_name]}

    async def update_shadow(self, thing_name, desired):
        if self.fail_update:
            raise TransportError("shadow update rejected")
        self.shadows.setdefault(thing_name, {}).setdefault("desired", {}).update(desired)
        return {"state": {"desired": desired}}

    async def publish(self, topic, payload):
        if self.fail_publish:
            raise TransportError("publish failed")
        self.published.append((topic, payload))

    async def resolve_endpoint(self):
        return "localhost:1883"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        AUTH_SECRET_KEY="test-secret",
        ANONYMOUS_DATA=False,
        USER_POOL_ID="us-east-1_test",
        AWS_ACCOUNT_ID="123456789012",
    )


@pytest.fixture
def store(settings):
    return MemoryStore(build_tables(settings))


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry():
    registry = AsyncMock()
    registry.search_things.return_value = []
    registry.describe_thing.return_value = None
    return registry


@pytest.fixture
def identity():
    identity = AsyncMock()
    identity.phone_number.return_value = "+15555550100"
    return identity


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def metrics():
    return AsyncMock()


@pytest.fixture
def services(settings, store, transport, registry, identity, notifier, metrics):
    return build_services(
        settings,
        store=store,
        transport=transport,
        registry=registry,
        identity=identity,
        notifier=notifier,
        metrics=metrics,
    )


@pytest.fixture
def ticket():
    return Ticket(sub=USER_ID)


@pytest.fixture
def add_registration(store, settings):
    """Insert a registration row directly"""

    async def _add(device_id=DEVICE_ID, user_id=USER_ID, status="complete", device_name=None):
        row = {
            "userId": user_id,
            "deviceId": device_id,
            "deviceName": device_name or f"{device_id} name",
            "modelNumber": "model-1",
            "status": status,
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
        }
        await store.put_item(settings.REGISTRATION_TABLE, row)
        return row

    return _add


@pytest.fixture
def add_setting(store, settings):
    async def _add(user_id=USER_ID, alert_level=("error", "warning"), send_notification=True):
        row = {
            "settingId": user_id,
            "setting": {
                "alertLevel": list(alert_level),
                "sendNotification": send_notification,
            },
        }
        await store.put_item(settings.SETTINGS_TABLE, row)
        return row

    return _add
