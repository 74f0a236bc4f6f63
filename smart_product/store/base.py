"""Key-range store interface shared by every backend"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from smart_product.store.conditions import Condition, KeyCondition


@dataclass(frozen=True)
class IndexSchema:
    """Hash/range key attributes of a secondary index"""

    hash_key: str
    range_key: Optional[str] = None


@dataclass(frozen=True)
class TableSchema:
    """Primary key attributes and secondary indexes of a table"""

    name: str
    hash_key: str
    range_key: Optional[str] = None
    indexes: Dict[str, IndexSchema] = field(default_factory=dict)

    def key_of(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Extract the primary key of an item"""
        key = {self.hash_key: item[self.hash_key]}
        if self.range_key:
            key[self.range_key] = item[self.range_key]
        return key

    def index(self, index_name: Optional[str]) -> IndexSchema:
        if index_name is None:
            return IndexSchema(self.hash_key, self.range_key)
        try:
            return self.indexes[index_name]
        except KeyError:
            raise ValueError(f"Table {self.name} has no index {index_name}") from None

    def evaluated_key(
        self, item: Dict[str, Any], index_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Continuation key for an item: primary key plus index key attributes"""
        key = self.key_of(item)
        if index_name is not None:
            index = self.index(index_name)
            key[index.hash_key] = item[index.hash_key]
            if index.range_key:
                key[index.range_key] = item.get(index.range_key)
        return key

    def sort_tuple(
        self, item: Dict[str, Any], index_name: Optional[str] = None
    ) -> Tuple[str, str, str]:
        """Total order within a partition: index sort key, then primary key"""
        index = self.index(index_name)
        sort_value = item.get(index.range_key) if index.range_key else ""
        range_value = item.get(self.range_key) if self.range_key else ""
        return (
            _text(sort_value),
            _text(item.get(self.hash_key)),
            _text(range_value),
        )

    def validate_item(self, item: Dict[str, Any]) -> None:
        if self.hash_key not in item or (self.range_key and self.range_key not in item):
            raise ValueError(f"Item is missing the primary key of table {self.name}")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class QueryResult:
    """One range query response

    ``last_evaluated_key`` is only set when rows remain after the last
    scanned one.
    """

    items: List[Dict[str, Any]]
    last_evaluated_key: Optional[Dict[str, Any]] = None
    count: int = 0
    scanned_count: int = 0


class KeyRangeStore(ABC):
    """Key-value store with range queries over a partition

    Filters passed to :meth:`query` are applied after the range scan, so
    ``limit`` bounds the rows read, not the rows returned.
    """

    def __init__(self, tables: List[TableSchema]):
        self.tables: Dict[str, TableSchema] = {table.name: table for table in tables}

    def schema(self, table: str) -> TableSchema:
        try:
            return self.tables[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    async def initialize(self) -> None:
        """Prepare backend resources (tables, connections)"""

    async def close(self) -> None:
        """Release backend resources"""

    async def ping(self) -> bool:
        return True

    @abstractmethod
    async def get_item(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the item stored under ``key`` or None"""

    @abstractmethod
    async def put_item(self, table: str, item: Dict[str, Any]) -> None:
        """Insert or replace an item"""

    @abstractmethod
    async def delete_item(self, table: str, key: Dict[str, Any]) -> None:
        """Remove an item; a missing key is not an error"""

    @abstractmethod
    async def update_item(
        self, table: str, key: Dict[str, Any], values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Set attributes on the item under ``key`` (upsert) and return it"""

    @abstractmethod
    async def query(
        self,
        table: str,
        hash_value: Any,
        *,
        index: Optional[str] = None,
        key_condition: Optional[KeyCondition] = None,
        filter: Optional[Condition] = None,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        scan_forward: bool = True,
    ) -> QueryResult:
        """Range query over one partition of a table or index"""
