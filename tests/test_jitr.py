"""Tests for certificate onboarding and telemetry enrichment"""

import datetime
import json

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from smart_product.core.errors import (
    InvalidRequestError,
    NotFoundError,
    StoreError,
    TransportError,
    UpstreamError,
)
from smart_product.services.jitr import common_name, policy_document
from smart_product.services.telemetry import enrich, fahrenheit_to_celsius

DEVICE_ID = "device-1"
CERTIFICATE_ID = "a1b2c3"


def device_certificate(cn=DEVICE_ID) -> str:
    """Self-signed PEM certificate with the given Common Name"""
    key = ec.generate_private_key(ec.SECP256R1())
    if cn:
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    else:
        name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Smart Product")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode()


def registered_event():
    return {
        "certificateId": CERTIFICATE_ID,
        "caCertificateId": "ca-1",
        "awsAccountId": "123456789012",
        "certificateStatus": "PENDING_ACTIVATION",
    }


class TestCertificateHelpers:
    """Tests for Common Name extraction and the device policy"""

    def test_common_name(self):
        assert common_name(device_certificate("hvac-42")) == "hvac-42"

    def test_certificate_without_common_name(self):
        with pytest.raises(ValueError):
            common_name(device_certificate(cn=None))

    def test_policy_scopes_device_topics(self, settings):
        policy = policy_document("us-east-1", "123456789012", settings)

        connect = policy["Statement"][0]
        assert connect["Action"] == ["iot:Connect"]
        assert connect["Resource"] == (
            "arn:aws:iot:us-east-1:123456789012:client/${iot:Connection.Thing.ThingName}"
        )
        publish = policy["Statement"][2]["Resource"]
        assert (
            "arn:aws:iot:us-east-1:123456789012:topic/smartproduct/telemetry/"
            "${iot:Connection.Thing.ThingName}" in publish
        )


@pytest.mark.asyncio
class TestRegisterCertificate:
    """Tests for JitrService.register_certificate"""

    async def test_activates_certificate_and_completes_registration(
        self, services, registry, metrics, store, settings, add_registration
    ):
        await add_registration(status="pending")
        registry.certificate_pem.return_value = device_certificate()
        arn = f"arn:aws:iot:{settings.AWS_REGION}:123456789012:cert/{CERTIFICATE_ID}"

        result = await services.jitr.register_certificate(registered_event())

        assert result["code"] == 200
        policy_name, policy, target = registry.attach_policy.await_args.args
        assert (policy_name, target) == (CERTIFICATE_ID, arn)
        assert json.loads(policy)["Version"] == "2012-10-17"
        registry.activate_certificate.assert_awaited_once_with(CERTIFICATE_ID)
        registry.attach_thing_principal.assert_awaited_once_with(DEVICE_ID, arn)
        metrics.send.assert_awaited_once_with({"Registrations": 1})

        row = await store.get_item(
            settings.REGISTRATION_TABLE, {"userId": "user-1", "deviceId": DEVICE_ID}
        )
        assert row["status"] == "complete"
        assert row["activatedAt"] == row["updatedAt"]

    async def test_unregistered_device_leaves_certificate_attached(
        self, services, registry, metrics
    ):
        registry.certificate_pem.return_value = device_certificate()

        with pytest.raises(NotFoundError) as exc_info:
            await services.jitr.register_certificate(registered_event())

        assert exc_info.value.error == "DeviceNotFoundFailure"
        registry.attach_thing_principal.assert_awaited_once()
        registry.delete_thing.assert_not_awaited()
        metrics.send.assert_not_awaited()

    async def test_completed_registration_is_not_pending(self, services, registry, add_registration):
        await add_registration(status="complete")
        registry.certificate_pem.return_value = device_certificate()

        with pytest.raises(NotFoundError):
            await services.jitr.register_certificate(registered_event())

    async def test_event_without_certificate(self, services):
        with pytest.raises(InvalidRequestError):
            await services.jitr.register_certificate({"awsAccountId": "123456789012"})

    async def test_registry_failure(self, services, registry):
        registry.activate_certificate.side_effect = TransportError("CertificateStateException")

        with pytest.raises(UpstreamError) as exc_info:
            await services.jitr.register_certificate(registered_event())

        assert exc_info.value.error == "CertificateRegistrationFailure"
        registry.attach_thing_principal.assert_not_awaited()

    async def test_registration_update_failure(
        self, services, registry, store, add_registration, monkeypatch
    ):
        await add_registration(status="pending")
        registry.certificate_pem.return_value = device_certificate()

        async def failing_update(table, key, values):
            raise StoreError("conditional check failed")

        monkeypatch.setattr(store, "update_item", failing_update)

        with pytest.raises(UpstreamError) as exc_info:
            await services.jitr.register_certificate(registered_event())
        assert exc_info.value.error == "RegistrationUpdateFailure"


class TestTelemetryEnrichment:
    """Tests for Celsius conversion and UTC timestamps"""

    @pytest.mark.parametrize(
        "fahrenheit,celsius",
        [(32, 0.0), (212, 100.0), (70, 21.11), ("68.5", 20.28)],
    )
    def test_fahrenheit_to_celsius(self, fahrenheit, celsius):
        assert fahrenheit_to_celsius(fahrenheit) == celsius

    def test_enrich_adds_derived_fields(self):
        record = enrich(
            {"actualTemperature": 70, "targetTemperature": 72, "timestamp": 1700000000000}
        )

        assert record["actualTemperatureC"] == 21.11
        assert record["targetTemperatureC"] == 22.22
        assert record["sentAtUtc"] == "2023-11-14T22:13:20.000Z"
        assert record["createdAtUtc"] == record["sentAtUtc"]

    def test_enrich_accepts_iso_timestamps(self):
        record = enrich({"timestamp": "2024-03-01T12:00:00Z"})
        assert record["sentAtUtc"] == "2024-03-01T12:00:00.000Z"


@pytest.mark.asyncio
class TestTelemetryIngest:
    """Tests for TelemetryService.ingest"""

    async def test_stores_batch(self, services, store, settings):
        records = await services.telemetry.ingest(
            DEVICE_ID,
            [
                {"actualTemperature": 70, "timestamp": 1700000000000},
                {"actualTemperature": 71, "timestamp": 1700000060000},
            ],
        )

        assert [r["deviceId"] for r in records] == [DEVICE_ID, DEVICE_ID]
        stored = await store.query(settings.TELEMETRY_TABLE, DEVICE_ID)
        assert [item["actualTemperatureC"] for item in stored.items] == [21.11, 21.67]

    async def test_record_without_timestamp_is_not_stored(self, services, store, settings):
        await services.telemetry.ingest(DEVICE_ID, {"actualTemperature": 70})
        assert (await store.query(settings.TELEMETRY_TABLE, DEVICE_ID)).items == []

    async def test_bad_reading_is_transform_failure(self, services):
        with pytest.raises(UpstreamError) as exc_info:
            await services.telemetry.ingest(DEVICE_ID, {"actualTemperature": "warm"})
        assert exc_info.value.error == "TelemetryTransformFailure"
