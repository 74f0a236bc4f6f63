"""IoT control plane: things, certificates and policies"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from smart_product.core.errors import TransportError

logger = logging.getLogger(__name__)

FLEET_INDEX = "AWS_Things"


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


class ThingRegistry:
    """Thin async wrapper over the boto3 ``iot`` client"""

    def __init__(self, region_name: str, thing_type: str, client=None):
        self.thing_type = thing_type
        self.client = client or boto3.client("iot", region_name=region_name)

    async def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(getattr(self.client, operation), **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"iot.{operation} failed: {e}") from e

    async def create_thing(self, registration: Dict[str, Any]) -> Dict[str, Any]:
        attributes = {
            "userId": registration["userId"],
            "deviceName": registration["deviceName"],
            "modelNumber": registration["modelNumber"],
        }
        await self._call(
            "create_thing",
            thingName=registration["deviceId"],
            thingTypeName=self.thing_type,
            attributePayload={"attributes": attributes, "merge": True},
        )
        return attributes

    async def describe_thing(self, thing_name: str) -> Optional[Dict[str, Any]]:
        """The thing, or None when it does not exist"""
        try:
            return await asyncio.to_thread(self.client.describe_thing, thingName=thing_name)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return None
            raise TransportError(f"iot.describe_thing failed: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"iot.describe_thing failed: {e}") from e

    async def delete_thing(self, thing_name: str) -> None:
        """
        Delete a thing together with its certificates and their policies
        Each certificate principal is detached, deactivated and force deleted,
        then the policy named after the certificate id goes too.
        """
        response = await self._call("list_thing_principals", thingName=thing_name)
        for principal in response.get("principals", []):
            if "cert/" not in principal:
                continue
            certificate_id = principal[principal.index("cert/") + 5 :]

            await self._call("detach_thing_principal", thingName=thing_name, principal=principal)
            await self._call(
                "update_certificate", certificateId=certificate_id, newStatus="INACTIVE"
            )
            await self._call("delete_certificate", certificateId=certificate_id, forceDelete=True)
            await self._call("delete_policy", policyName=certificate_id)
            logger.info(f"Removed certificate {certificate_id} from thing {thing_name}")

        await self._call("delete_thing", thingName=thing_name)
        logger.info(f"Deleted thing {thing_name}")

    async def activate_certificate(self, certificate_id: str) -> None:
        await self._call("update_certificate", certificateId=certificate_id, newStatus="ACTIVE")

    async def certificate_pem(self, certificate_id: str) -> str:
        response = await self._call("describe_certificate", certificateId=certificate_id)
        return response["certificateDescription"]["certificatePem"]

    async def create_policy(self, policy_name: str, policy_document: str) -> None:
        """Create a policy; an existing one with the same name is kept"""
        try:
            await asyncio.to_thread(
                self.client.create_policy,
                policyName=policy_name,
                policyDocument=policy_document,
            )
        except ClientError as e:
            if _error_code(e) != "ResourceAlreadyExistsException":
                raise TransportError(f"iot.create_policy failed: {e}") from e
            logger.info(f"Policy {policy_name} already exists")
        except BotoCoreError as e:
            raise TransportError(f"iot.create_policy failed: {e}") from e

    async def attach_policy(self, policy_name: str, policy_document: str, principal: str) -> None:
        await self.create_policy(policy_name, policy_document)
        try:
            await asyncio.to_thread(
                self.client.attach_policy, policyName=policy_name, target=principal
            )
        except ClientError as e:
            if _error_code(e) != "ResourceAlreadyExistsException":
                raise TransportError(f"iot.attach_policy failed: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"iot.attach_policy failed: {e}") from e

    async def attach_thing_principal(self, thing_name: str, principal: str) -> None:
        await self._call("attach_thing_principal", thingName=thing_name, principal=principal)

    async def search_things(self, query: str) -> List[Dict[str, Any]]:
        """Every thing of the fleet index matching ``query``"""
        things: List[Dict[str, Any]] = []
        params = {"indexName": FLEET_INDEX, "queryString": query}
        while True:
            response = await self._call("search_index", **params)
            things.extend(response.get("things", []))
            next_token = response.get("nextToken")
            if not next_token:
                return things
            params["nextToken"] = next_token
