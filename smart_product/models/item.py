"""Stored item model - one JSON document per key-range store row"""

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from smart_product.core.database import Base


class StoredItem(Base):
    """
    Items table shared by every logical table
    - table_name: logical table the item belongs to
    - hash_key/range_key: primary key values, stringified
    - body: the full item document, secondary index attributes included
    """

    __tablename__ = "items"

    table_name = Column(String(255), primary_key=True)
    hash_key = Column(String(255), primary_key=True)
    # Empty string for tables without a range key
    range_key = Column(String(255), primary_key=True, default="")

    body = Column(JSON, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<StoredItem(table_name='{self.table_name}', hash_key='{self.hash_key}', range_key='{self.range_key}')>"
