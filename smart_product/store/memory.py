"""In-process store used by tests and single-node development"""

import copy
from typing import Any, Dict, Optional, Tuple

from smart_product.store.base import KeyRangeStore, QueryResult


class MemoryStore(KeyRangeStore):
    """Dict-backed store with the same paging semantics as DynamoDB"""

    def __init__(self, tables):
        super().__init__(tables)
        self._data: Dict[str, Dict[Tuple, Dict[str, Any]]] = {
            name: {} for name in self.tables
        }

    def _key_tuple(self, table: str, key: Dict[str, Any]) -> Tuple:
        schema = self.schema(table)
        if schema.range_key:
            return (key[schema.hash_key], key[schema.range_key])
        return (key[schema.hash_key],)

    async def get_item(self, table, key):
        item = self._data[self.schema(table).name].get(self._key_tuple(table, key))
        return copy.deepcopy(item) if item is not None else None

    async def put_item(self, table, item):
        self.schema(table).validate_item(item)
        self._data[table][self._key_tuple(table, item)] = copy.deepcopy(item)

    async def delete_item(self, table, key):
        self._data[self.schema(table).name].pop(self._key_tuple(table, key), None)

    async def update_item(self, table, key, values):
        rows = self._data[self.schema(table).name]
        item = rows.setdefault(self._key_tuple(table, key), copy.deepcopy(key))
        item.update(copy.deepcopy(values))
        return copy.deepcopy(item)

    async def query(
        self,
        table,
        hash_value,
        *,
        index=None,
        key_condition=None,
        filter=None,
        limit=None,
        exclusive_start_key=None,
        scan_forward=True,
    ):
        schema = self.schema(table)
        index_schema = schema.index(index)

        partition = []
        for item in self._data[table].values():
            if item.get(index_schema.hash_key) != hash_value:
                continue
            if index_schema.range_key and index_schema.range_key not in item:
                # Sparse index: rows without the sort attribute are not indexed
                continue
            if (
                key_condition is not None
                and index_schema.range_key
                and not key_condition.matches(
                    item.get(index_schema.range_key)
                )
            ):
                continue
            partition.append(item)

        partition.sort(
            key=lambda row: schema.sort_tuple(row, index), reverse=not scan_forward
        )

        if exclusive_start_key:
            start = schema.sort_tuple(exclusive_start_key, index)
            if scan_forward:
                partition = [r for r in partition if schema.sort_tuple(r, index) > start]
            else:
                partition = [r for r in partition if schema.sort_tuple(r, index) < start]

        last_evaluated_key: Optional[Dict[str, Any]] = None
        scanned = partition
        if limit is not None and len(partition) > limit:
            scanned = partition[:limit]
            last_evaluated_key = schema.evaluated_key(scanned[-1], index)

        items = [copy.deepcopy(r) for r in scanned if filter is None or filter.matches(r)]
        return QueryResult(
            items=items,
            last_evaluated_key=last_evaluated_key,
            count=len(items),
            scanned_count=len(scanned),
        )
