"""Key-range store backends"""

from smart_product.store.base import IndexSchema, KeyRangeStore, QueryResult, TableSchema
from smart_product.store.conditions import Attr, Key, any_of


def create_store(settings) -> KeyRangeStore:
    """Build the store backend selected by ``STORE_BACKEND``"""
    from smart_product.models.tables import build_tables

    tables = build_tables(settings)
    backend = settings.STORE_BACKEND.lower()
    if backend == "sql":
        from smart_product.store.sql import SQLStore

        return SQLStore(tables, settings.DATABASE_URL)
    if backend == "dynamodb":
        from smart_product.store.dynamodb import DynamoDBStore

        return DynamoDBStore(tables, region_name=settings.AWS_REGION)
    if backend == "memory":
        from smart_product.store.memory import MemoryStore

        return MemoryStore(tables)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")


__all__ = [
    "Attr",
    "IndexSchema",
    "Key",
    "KeyRangeStore",
    "QueryResult",
    "TableSchema",
    "any_of",
    "create_store",
]
