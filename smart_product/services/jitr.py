"""Just-in-time registration of device certificates

When a device first connects with a certificate signed by the registered
CA, the broker announces the certificate on
``$aws/events/certificates/registered/<caId>``. The certificate gets a
per-device policy, is activated and attached to the thing named by its
Common Name, and the device's pending registration becomes complete.
"""

import json
import logging
from typing import Any, Dict

from cryptography import x509
from cryptography.x509.oid import NameOID

from smart_product.core.clock import utc_now
from smart_product.core.errors import (
    InvalidRequestError,
    NotFoundError,
    StoreError,
    TransportError,
    UpstreamError,
)
from smart_product.models.tables import RegistrationStatus

logger = logging.getLogger(__name__)

THING_NAME_VARIABLE = "${iot:Connection.Thing.ThingName}"


def common_name(certificate_pem: str) -> str:
    """Common Name of a PEM certificate's subject"""
    certificate = x509.load_pem_x509_certificate(certificate_pem.encode())
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not names:
        raise ValueError("Certificate subject has no Common Name")
    return names[0].value


def policy_document(region: str, account_id: str, settings) -> Dict[str, Any]:
    """
    Policy scoping a device to its own client id, shadow and topics
    Devices publish telemetry, events and command replies, and subscribe to
    their shadow and command topics.
    """
    thing = THING_NAME_VARIABLE
    arn = f"arn:aws:iot:{region}:{account_id}"
    command_topic = f"{arn}:topic/{settings.COMMAND_TOPIC}/{thing}"
    shadow_topics = f"{arn}:topic/$aws/things/{thing}/shadow/*"
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["iot:Connect"],
                "Resource": f"{arn}:client/{thing}",
            },
            {
                "Effect": "Allow",
                "Action": ["iot:GetThingShadow", "iot:UpdateThingShadow"],
                "Resource": f"{arn}:thing/{thing}",
            },
            {
                "Effect": "Allow",
                "Action": ["iot:Publish"],
                "Resource": [
                    f"{arn}:topic/{settings.TELEMETRY_TOPIC}/{thing}",
                    f"{arn}:topic/{settings.EVENT_TOPIC}/{thing}",
                    command_topic,
                    shadow_topics,
                ],
            },
            {
                "Effect": "Allow",
                "Action": ["iot:Subscribe"],
                "Resource": [
                    f"{arn}:topicfilter/$aws/things/{thing}/shadow/*",
                    f"{arn}:topicfilter/{settings.COMMAND_TOPIC}/{thing}",
                ],
            },
            {
                "Effect": "Allow",
                "Action": ["iot:Receive"],
                "Resource": [shadow_topics, command_topic],
            },
        ],
    }


class JitrService:
    def __init__(self, store, gate, registry, metrics, settings):
        self.store = store
        self.gate = gate
        self.registry = registry
        self.metrics = metrics
        self.settings = settings

    async def register_certificate(self, event: Dict[str, Any]) -> Dict[str, Any]:
        try:
            account_id = str(event["awsAccountId"]).strip()
            certificate_id = str(event["certificateId"]).strip()
        except (KeyError, TypeError) as e:
            raise InvalidRequestError(
                "InvalidParameter", "Certificate registration event is missing its certificate."
            ) from e

        region = self.settings.AWS_REGION
        certificate_arn = f"arn:aws:iot:{region}:{account_id}:cert/{certificate_id}"
        policy = json.dumps(policy_document(region, account_id, self.settings))

        try:
            await self.registry.attach_policy(certificate_id, policy, certificate_arn)
            await self.registry.activate_certificate(certificate_id)
            thing_name = common_name(await self.registry.certificate_pem(certificate_id))
            await self.registry.attach_thing_principal(thing_name, certificate_arn)
        except (TransportError, ValueError) as e:
            logger.error(e)
            logger.error(
                f"[CertificateRegistrationFailure] Error occurred while registering certificate {certificate_id}."
            )
            raise UpstreamError(
                "CertificateRegistrationFailure",
                f"Error occurred while registering certificate {certificate_id}.",
            ) from e
        logger.info(f"Certificate {certificate_id} activated for thing {thing_name}")

        # The certificate stays attached even when no pending registration exists
        result = await self.complete_registration(thing_name)
        await self.metrics.send({"Registrations": 1})
        return result

    async def complete_registration(self, thing_name: str) -> Dict[str, Any]:
        """Advance the device's pending registration to complete"""
        try:
            pending = await self.gate.registrations(thing_name, RegistrationStatus.PENDING)
            if not pending:
                logger.error(f"[DeviceNotFoundFailure] Device {thing_name} has not registered.")
                raise NotFoundError(
                    "DeviceNotFoundFailure", f"Device {thing_name} has not registered."
                )

            now = utc_now()
            await self.store.update_item(
                self.settings.REGISTRATION_TABLE,
                {"userId": pending[0]["userId"], "deviceId": thing_name},
                {
                    "activatedAt": now,
                    "updatedAt": now,
                    "status": RegistrationStatus.COMPLETE.value,
                },
            )
        except StoreError as e:
            logger.error(e)
            logger.error(
                f"[RegistrationUpdateFailure] Error occurred while updating registration for device {thing_name}."
            )
            raise UpstreamError(
                "RegistrationUpdateFailure",
                f"Error occurred while updating registration for device {thing_name}.",
            ) from e

        return {
            "code": 200,
            "message": f"Success in updating registration for device {thing_name}.",
        }
