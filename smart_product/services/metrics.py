"""Anonymous usage metrics"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


class UsageMetrics:
    """
    Fire-and-forget reporting of anonymous usage counters
    Nothing is sent unless ANONYMOUS_DATA is enabled, and a failed send is
    only logged.
    """

    def __init__(self, settings, client: httpx.AsyncClient = None):
        self.enabled = settings.ANONYMOUS_DATA
        self.solution_id = settings.SOLUTION_ID
        self.solution_uuid = settings.SOLUTION_UUID
        self.url = settings.METRICS_URL
        self.client = client

    def build(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "Solution": self.solution_id,
            "UUID": self.solution_uuid,
            "TimeStamp": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-5],
            "Data": data,
        }

    async def send(self, data: Dict[str, Any]) -> None:
        if not self.enabled:
            return

        metric = self.build(data)
        try:
            if self.client is None:
                self.client = httpx.AsyncClient(timeout=10.0)
            response = await self.client.post(self.url, json=metric)
            response.raise_for_status()
            logger.debug(f"Usage metric sent: {data}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send usage metric {data}: {e}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
