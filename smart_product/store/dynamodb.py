"""DynamoDB-backed key-range store (boto3)"""

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Dict

import boto3
from boto3.dynamodb import conditions as ddb
from botocore.exceptions import BotoCoreError, ClientError

from smart_product.core.errors import StoreError
from smart_product.store.base import KeyRangeStore, QueryResult
from smart_product.store.conditions import And, Comparison, Or

logger = logging.getLogger(__name__)


def to_dynamodb(item: Dict[str, Any]) -> Dict[str, Any]:
    """DynamoDB rejects floats; round-trip numbers through Decimal"""
    return json.loads(json.dumps(item), parse_float=Decimal)


def from_dynamodb(value: Any) -> Any:
    """Convert Decimals back to int/float for JSON responses"""
    if isinstance(value, list):
        return [from_dynamodb(v) for v in value]
    if isinstance(value, dict):
        return {k: from_dynamodb(v) for k, v in value.items()}
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def to_filter_expression(condition):
    """Translate a post-filter into a boto3 condition"""
    if isinstance(condition, And):
        return to_filter_expression(condition.left) & to_filter_expression(condition.right)
    if isinstance(condition, Or):
        return to_filter_expression(condition.left) | to_filter_expression(condition.right)
    if isinstance(condition, Comparison):
        attr = ddb.Attr(condition.name)
        if condition.operator == "eq":
            return attr.eq(condition.value)
        if condition.operator == "ne":
            return attr.ne(condition.value)
    raise ValueError(f"Unsupported filter: {condition!r}")


def to_key_expression(hash_key: str, hash_value: Any, range_key: str, key_condition):
    expression = ddb.Key(hash_key).eq(hash_value)
    if key_condition is None or not range_key:
        return expression
    key = ddb.Key(range_key)
    op = key_condition.operator
    values = key_condition.values
    if op == "between":
        return expression & key.between(values[0], values[1])
    return expression & getattr(key, op)(values[0])


class DynamoDBStore(KeyRangeStore):
    """Key-range store over DynamoDB tables

    boto3 is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, tables, region_name: str, resource=None):
        super().__init__(tables)
        self.resource = resource or boto3.resource("dynamodb", region_name=region_name)

    def _table(self, table: str):
        return self.resource.Table(self.schema(table).name)

    async def _call(self, description: str, func, **kwargs):
        try:
            return await asyncio.to_thread(func, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"{description} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self.resource.meta.client.list_tables, Limit=1)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"DynamoDB ping failed: {e}")
            return False

    async def get_item(self, table, key):
        response = await self._call(
            f"get_item on {table}", self._table(table).get_item, Key=to_dynamodb(key)
        )
        item = response.get("Item")
        return from_dynamodb(item) if item is not None else None

    async def put_item(self, table, item):
        self.schema(table).validate_item(item)
        await self._call(
            f"put_item on {table}", self._table(table).put_item, Item=to_dynamodb(item)
        )

    async def delete_item(self, table, key):
        await self._call(
            f"delete_item on {table}", self._table(table).delete_item, Key=to_dynamodb(key)
        )

    async def update_item(self, table, key, values):
        names = {}
        expression_values = {}
        assignments = []
        for i, (name, value) in enumerate(values.items()):
            names[f"#a{i}"] = name
            expression_values[f":v{i}"] = value
            assignments.append(f"#a{i} = :v{i}")

        response = await self._call(
            f"update_item on {table}",
            self._table(table).update_item,
            Key=to_dynamodb(key),
            UpdateExpression="SET " + ", ".join(assignments),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=to_dynamodb(expression_values),
            ReturnValues="ALL_NEW",
        )
        return from_dynamodb(response.get("Attributes", {}))

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
        index_schema = self.schema(table).index(index)
        params = {
            "KeyConditionExpression": to_key_expression(
                index_schema.hash_key, hash_value, index_schema.range_key, key_condition
            ),
            "ScanIndexForward": scan_forward,
        }
        if index:
            params["IndexName"] = index
        if filter is not None:
            params["FilterExpression"] = to_filter_expression(filter)
        if limit is not None:
            params["Limit"] = limit
        if exclusive_start_key:
            params["ExclusiveStartKey"] = to_dynamodb(exclusive_start_key)

        response = await self._call(f"query on {table}", self._table(table).query, **params)
        last_evaluated_key = response.get("LastEvaluatedKey")
        return QueryResult(
            items=from_dynamodb(response.get("Items", [])),
            last_evaluated_key=from_dynamodb(last_evaluated_key) if last_evaluated_key else None,
            count=response.get("Count", 0),
            scanned_count=response.get("ScannedCount", 0),
        )
