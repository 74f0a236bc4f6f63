"""Paginated query aggregator

Post-filters run after the range scan, so a single store request can come
back sparse or even empty while more matching rows exist further along the
index. ``query_page`` keeps reading with the returned continuation key until
the page holds at least ``page_min`` items or the partition is exhausted.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from smart_product.core.errors import InvalidRequestError
from smart_product.store.base import KeyRangeStore
from smart_product.store.conditions import Condition, KeyCondition

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One logical page returned to API callers"""

    items: List[Dict[str, Any]]
    last_evaluated_key: Optional[Dict[str, Any]] = None
    # Filter values echoed back so the caller can re-supply them
    filters: Dict[str, Any] = field(default_factory=dict)

    @property
    def continuation_token(self) -> Optional[str]:
        return encode_token(self.last_evaluated_key)

    def to_dict(self) -> Dict[str, Any]:
        body = {"Items": self.items, "LastEvaluatedKey": self.continuation_token}
        body.update(self.filters)
        return body


def encode_token(key: Optional[Dict[str, Any]]) -> Optional[str]:
    """Encode a last evaluated key as an opaque URL-safe token"""
    if not key:
        return None
    return base64.urlsafe_b64encode(json.dumps(key, sort_keys=True).encode()).decode()


def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a ``lastevalkey`` query value back into an exclusive start key"""
    if token is None:
        return None
    token = token.strip()
    if token in ("", "null"):
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        key = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.info(f"[InvalidParameter] Undecodable continuation token: {e}")
        raise InvalidRequestError(
            "InvalidParameter", "The lastevalkey parameter is not a valid continuation token."
        ) from e
    if not isinstance(key, dict):
        raise InvalidRequestError(
            "InvalidParameter", "The lastevalkey parameter is not a valid continuation token."
        )
    return key


async def query_page(
    store: KeyRangeStore,
    table: str,
    hash_value: Any,
    *,
    index: Optional[str] = None,
    key_condition: Optional[KeyCondition] = None,
    filter: Optional[Condition] = None,
    start_key: Optional[Dict[str, Any]] = None,
    scan_forward: bool = False,
    limit: int = 50,
    page_min: int = 20,
    max_iterations: int = 10,
) -> Page:
    """
    Read one logical page of at least ``page_min`` items
    Args:
        start_key: exclusive start key from the previous page
        limit: per-request row cap passed to the store
        max_iterations: hard cap on store requests for this page
    Returns:
        Page whose last_evaluated_key is only set when more rows remain
    """
    items: List[Dict[str, Any]] = []
    last_evaluated_key = start_key
    iterations = 0

    while True:
        result = await store.query(
            table,
            hash_value,
            index=index,
            key_condition=key_condition,
            filter=filter,
            limit=limit,
            exclusive_start_key=last_evaluated_key,
            scan_forward=scan_forward,
        )
        iterations += 1
        items.extend(result.items)
        last_evaluated_key = result.last_evaluated_key

        if len(items) >= page_min or not last_evaluated_key:
            break
        if iterations >= max_iterations:
            logger.warning(
                f"Stopped filling page of {table} for {hash_value} after {iterations} "
                f"requests with {len(items)} items"
            )
            break

    return Page(items=items, last_evaluated_key=last_evaluated_key)


async def count_all(
    store: KeyRangeStore,
    table: str,
    hash_value: Any,
    *,
    index: Optional[str] = None,
    filter: Optional[Condition] = None,
    limit: int = 100,
) -> int:
    """Count every matching item in a partition without keeping the items"""
    count = 0
    last_evaluated_key = None

    while True:
        result = await store.query(
            table,
            hash_value,
            index=index,
            filter=filter,
            limit=limit,
            exclusive_start_key=last_evaluated_key,
            scan_forward=False,
        )
        count += result.count
        last_evaluated_key = result.last_evaluated_key
        if not last_evaluated_key:
            break

    return count


async def query_all(
    store: KeyRangeStore,
    table: str,
    hash_value: Any,
    *,
    index: Optional[str] = None,
    filter: Optional[Condition] = None,
    limit: int = 100,
    scan_forward: bool = True,
) -> List[Dict[str, Any]]:
    """Load a whole partition page by page"""
    items: List[Dict[str, Any]] = []
    last_evaluated_key = None
    while True:
        result = await store.query(
            table,
            hash_value,
            index=index,
            filter=filter,
            limit=limit,
            exclusive_start_key=last_evaluated_key,
            scan_forward=scan_forward,
        )
        items.extend(result.items)
        last_evaluated_key = result.last_evaluated_key
        if not last_evaluated_key:
            return items
