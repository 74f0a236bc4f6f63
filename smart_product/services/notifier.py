"""SMS delivery"""

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from smart_product.core.errors import TransportError

logger = logging.getLogger(__name__)


class SmsNotifier:
    """Sends text messages through SNS"""

    def __init__(self, region_name: str, client=None):
        self.client = client or boto3.client("sns", region_name=region_name)

    async def send_sms(self, phone_number: str, body: str) -> None:
        try:
            response = await asyncio.to_thread(
                self.client.publish, PhoneNumber=phone_number, Message=body
            )
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"sns.publish failed: {e}") from e
        logger.debug(f"SMS sent: {response.get('MessageId')}")
