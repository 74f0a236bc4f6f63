"""Service wiring and FastAPI dependencies"""

from dataclasses import dataclass

from fastapi import Request

from smart_product.services.alerts import AlertService
from smart_product.services.commands import CommandService
from smart_product.services.devices import DeviceService
from smart_product.services.events import EventService
from smart_product.services.gate import RegistrationGate
from smart_product.services.jitr import JitrService
from smart_product.services.registration import RegistrationService
from smart_product.services.settings import SettingsService
from smart_product.services.telemetry import TelemetryService


@dataclass
class Services:
    """Every service of the application, sharing one set of collaborators"""

    settings: object
    store: object
    transport: object
    registry: object
    metrics: object
    gate: RegistrationGate
    commands: CommandService
    events: EventService
    alerts: AlertService
    registrations: RegistrationService
    devices: DeviceService
    user_settings: SettingsService
    jitr: JitrService
    telemetry: TelemetryService
    # MQTT client carrying inbound device traffic, when one is running
    mqtt: object = None


def build_services(
    settings, store, transport, registry, identity, notifier, metrics, mqtt=None
) -> Services:
    gate = RegistrationGate(store, settings)
    return Services(
        settings=settings,
        store=store,
        transport=transport,
        registry=registry,
        metrics=metrics,
        gate=gate,
        commands=CommandService(store, gate, transport, metrics, settings),
        events=EventService(store, gate, settings),
        alerts=AlertService(store, gate, identity, notifier, settings),
        registrations=RegistrationService(store, gate, registry, metrics, settings),
        devices=DeviceService(store, gate, registry, transport, settings),
        user_settings=SettingsService(store, settings),
        jitr=JitrService(store, gate, registry, metrics, settings),
        telemetry=TelemetryService(store, settings),
        mqtt=mqtt,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency for the application's services"""
    return request.app.state.services
