"""Database models and table definitions"""

from smart_product.models.item import StoredItem
from smart_product.models.tables import (
    CommandStatus,
    EventType,
    RegistrationStatus,
    build_tables,
)

__all__ = ["StoredItem", "CommandStatus", "EventType", "RegistrationStatus", "build_tables"]
