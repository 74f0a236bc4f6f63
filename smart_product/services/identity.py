"""User attributes from the identity provider"""

import asyncio
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from smart_product.core.errors import TransportError

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Looks up users of a Cognito user pool by subject id"""

    def __init__(self, region_name: str, user_pool_id: str, client=None):
        self.user_pool_id = user_pool_id
        self.client = client or boto3.client("cognito-idp", region_name=region_name)

    async def phone_number(self, user_id: str) -> Optional[str]:
        """Registered phone number of a user, None when unset"""
        try:
            response = await asyncio.to_thread(
                self.client.list_users,
                UserPoolId=self.user_pool_id,
                Filter=f'sub = "{user_id}"',
                AttributesToGet=["phone_number"],
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                f"[UsersRetrieveFailure] Error occurred while attempting to list users for user pool {self.user_pool_id}."
            )
            raise TransportError(f"cognito-idp.list_users failed: {e}") from e

        users = response.get("Users", [])
        if not users:
            return None
        for attribute in users[0].get("Attributes", []):
            if attribute.get("Name") == "phone_number" and attribute.get("Value"):
                return attribute["Value"]
        return None
