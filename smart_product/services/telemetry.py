"""Telemetry enrichment and storage"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List

from smart_product.core.clock import iso_from_timestamp
from smart_product.core.errors import StoreError, UpstreamError

logger = logging.getLogger(__name__)


def fahrenheit_to_celsius(temperature) -> float:
    celsius = (Decimal(str(temperature)) - 32) * 5 / 9
    return float(celsius.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def enrich(record: Dict[str, Any]) -> Dict[str, Any]:
    """Add Celsius temperatures and UTC send/receive times to a record"""
    record = dict(record)
    if "actualTemperature" in record:
        record["actualTemperatureC"] = fahrenheit_to_celsius(record["actualTemperature"])
    if "targetTemperature" in record:
        record["targetTemperatureC"] = fahrenheit_to_celsius(record["targetTemperature"])
    if "timestamp" in record:
        utc_time = iso_from_timestamp(record["timestamp"])
        record["sentAtUtc"] = utc_time
        record["createdAtUtc"] = utc_time
    return record


class TelemetryService:
    def __init__(self, store, settings):
        self.store = store
        self.table = settings.TELEMETRY_TABLE

    async def ingest(self, device_id: str, records) -> List[Dict[str, Any]]:
        """Enrich and persist one record or a batch published by a device"""
        if isinstance(records, dict):
            records = [records]

        try:
            enriched = [enrich({"deviceId": device_id, **r}) for r in records]
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.error(e)
            logger.error("Error occurred while transforming the telemetry event.")
            raise UpstreamError(
                "TelemetryTransformFailure",
                f"Error occurred while transforming the telemetry event for device {device_id}.",
            ) from e

        try:
            for record in enriched:
                if "timestamp" in record:
                    await self.store.put_item(self.table, record)
        except StoreError as e:
            logger.error(e)
            raise UpstreamError(
                "TelemetryStoreFailure",
                f"Error occurred while storing telemetry for device {device_id}.",
            ) from e

        logger.debug(f"Stored {len(enriched)} telemetry records for device {device_id}")
        return enriched
