"""SQLAlchemy-backed key-range store

Every logical table lives in the single ``items`` table as JSON documents.
Secondary indexes are evaluated over the JSON body, so any database with
JSON support in SQLAlchemy (SQLite, PostgreSQL, MySQL) works.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import String, and_, cast, delete, or_, select, text
from sqlalchemy.exc import SQLAlchemyError

from smart_product.core.database import close_db, create_engine, create_session_factory, init_db
from smart_product.core.errors import StoreError
from smart_product.models.item import StoredItem
from smart_product.store.base import KeyRangeStore, QueryResult

logger = logging.getLogger(__name__)


class SQLStore(KeyRangeStore):
    """Key-range store over an async SQLAlchemy engine"""

    def __init__(self, tables, database_url: str):
        super().__init__(tables)
        self.database_url = database_url
        self.engine = create_engine(database_url)
        self.session_factory = create_session_factory(self.engine)

    async def initialize(self):
        logger.info("Initializing SQL store...")
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to initialize database: {e}") from e

    async def close(self):
        await close_db(self.engine)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def _row_key(self, table: str, key: Dict[str, Any]):
        schema = self.schema(table)
        range_value = str(key[schema.range_key]) if schema.range_key else ""
        return table, str(key[schema.hash_key]), range_value

    async def get_item(self, table, key):
        try:
            async with self.session_factory() as session:
                row = await session.get(StoredItem, self._row_key(table, key))
                return dict(row.body) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_item failed on {table}: {e}") from e

    async def put_item(self, table, item):
        self.schema(table).validate_item(item)
        table_name, hash_key, range_key = self._row_key(table, item)
        try:
            async with self.session_factory() as session:
                await session.merge(
                    StoredItem(
                        table_name=table_name,
                        hash_key=hash_key,
                        range_key=range_key,
                        body=dict(item),
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"put_item failed on {table}: {e}") from e

    async def delete_item(self, table, key):
        table_name, hash_key, range_key = self._row_key(table, key)
        try:
            async with self.session_factory() as session:
                await session.execute(
                    delete(StoredItem).where(
                        StoredItem.table_name == table_name,
                        StoredItem.hash_key == hash_key,
                        StoredItem.range_key == range_key,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"delete_item failed on {table}: {e}") from e

    async def update_item(self, table, key, values):
        table_name, hash_key, range_key = self._row_key(table, key)
        try:
            async with self.session_factory() as session:
                row = await session.get(StoredItem, (table_name, hash_key, range_key))
                if row is None:
                    body = dict(key)
                    body.update(values)
                    session.add(
                        StoredItem(
                            table_name=table_name,
                            hash_key=hash_key,
                            range_key=range_key,
                            body=body,
                        )
                    )
                else:
                    # Reassign so the JSON column is flagged dirty
                    body = dict(row.body)
                    body.update(values)
                    row.body = body
                await session.commit()
                return body
        except SQLAlchemyError as e:
            raise StoreError(f"update_item failed on {table}: {e}") from e

    def _attribute(self, name: str):
        return cast(StoredItem.body[name].as_string(), String)

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

        stmt = select(StoredItem).where(StoredItem.table_name == table)

        if index is None:
            stmt = stmt.where(StoredItem.hash_key == str(hash_value))
            sort_column = StoredItem.range_key if schema.range_key else None
        else:
            stmt = stmt.where(self._attribute(index_schema.hash_key) == str(hash_value))
            if index_schema.range_key:
                sort_column = self._attribute(index_schema.range_key)
                # Sparse index: rows without the sort attribute are not indexed
                stmt = stmt.where(StoredItem.body[index_schema.range_key].as_string().isnot(None))
            else:
                sort_column = None

        if key_condition is not None and sort_column is not None:
            stmt = stmt.where(self._key_clause(sort_column, key_condition))

        if exclusive_start_key:
            start = schema.sort_tuple(exclusive_start_key, index)
            stmt = stmt.where(self._after(sort_column, start, scan_forward))

        order = [StoredItem.hash_key, StoredItem.range_key]
        if sort_column is not None:
            order.insert(0, sort_column)
        if not scan_forward:
            order = [column.desc() for column in order]
        stmt = stmt.order_by(*order)

        if limit is not None:
            # One extra row tells us whether anything remains after this page
            stmt = stmt.limit(limit + 1)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = [dict(row.body) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"query failed on {table}: {e}") from e

        last_evaluated_key: Optional[Dict[str, Any]] = None
        scanned = rows
        if limit is not None and len(rows) > limit:
            scanned = rows[:limit]
            last_evaluated_key = schema.evaluated_key(scanned[-1], index)

        items = [row for row in scanned if filter is None or filter.matches(row)]
        return QueryResult(
            items=items,
            last_evaluated_key=last_evaluated_key,
            count=len(items),
            scanned_count=len(scanned),
        )

    @staticmethod
    def _key_clause(column, condition):
        values = [str(v) for v in condition.values]
        op = condition.operator
        if op == "eq":
            return column == values[0]
        if op == "lt":
            return column < values[0]
        if op == "lte":
            return column <= values[0]
        if op == "gt":
            return column > values[0]
        if op == "gte":
            return column >= values[0]
        if op == "between":
            return column.between(values[0], values[1])
        if op == "begins_with":
            return column.startswith(values[0], autoescape=True)
        raise ValueError(f"Unsupported key operator: {op}")

    @staticmethod
    def _after(sort_column, start, scan_forward: bool):
        """Keyset condition: rows strictly after ``start`` in scan order"""
        sort_value, hash_value, range_value = start
        if scan_forward:
            after_key = or_(
                StoredItem.hash_key > hash_value,
                and_(StoredItem.hash_key == hash_value, StoredItem.range_key > range_value),
            )
            if sort_column is None:
                return after_key
            return or_(sort_column > sort_value, and_(sort_column == sort_value, after_key))

        before_key = or_(
            StoredItem.hash_key < hash_value,
            and_(StoredItem.hash_key == hash_value, StoredItem.range_key < range_value),
        )
        if sort_column is None:
            return before_key
        return or_(sort_column < sort_value, and_(sort_column == sort_value, before_key))
