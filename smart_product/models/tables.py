"""Logical tables, their keys and secondary indexes, and status enums"""

import enum
from typing import List

from smart_product.store.base import IndexSchema, TableSchema

# Secondary index names
DEVICE_ID_INDEX = "deviceId-index"
USER_DEVICE_NAME_INDEX = "userId-deviceName-index"
DEVICE_UPDATED_AT_INDEX = "deviceId-updatedAt-index"
DEVICE_TIMESTAMP_INDEX = "deviceId-timestamp-index"
USER_TIMESTAMP_INDEX = "userId-timestamp-index"


class RegistrationStatus(str, enum.Enum):
    """Onboarding state of a registration"""

    PENDING = "pending"  # Created, waiting for the device certificate
    COMPLETE = "complete"  # Device connected through JITR
    DELETED = "deleted"  # Soft deleted by the owner


class CommandStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class EventType(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DIAGNOSTIC = "diagnostic"


def build_tables(settings) -> List[TableSchema]:
    """Table schemas named after the configured table names"""
    return [
        TableSchema(
            name=settings.REGISTRATION_TABLE,
            hash_key="userId",
            range_key="deviceId",
            indexes={
                DEVICE_ID_INDEX: IndexSchema("deviceId"),
                USER_DEVICE_NAME_INDEX: IndexSchema("userId", "deviceName"),
            },
        ),
        TableSchema(
            name=settings.COMMANDS_TABLE,
            hash_key="deviceId",
            range_key="commandId",
            indexes={DEVICE_UPDATED_AT_INDEX: IndexSchema("deviceId", "updatedAt")},
        ),
        TableSchema(
            name=settings.EVENTS_TABLE,
            hash_key="deviceId",
            range_key="id",
            indexes={
                DEVICE_TIMESTAMP_INDEX: IndexSchema("deviceId", "timestamp"),
                USER_TIMESTAMP_INDEX: IndexSchema("userId", "timestamp"),
            },
        ),
        TableSchema(name=settings.SETTINGS_TABLE, hash_key="settingId"),
        TableSchema(
            name=settings.REFERENCE_TABLE, hash_key="deviceId", range_key="modelNumber"
        ),
        TableSchema(
            name=settings.TELEMETRY_TABLE, hash_key="deviceId", range_key="timestamp"
        ),
    ]
