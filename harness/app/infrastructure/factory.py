"""Transport factory: selects registry, sender and connection implementations from config.

Only place that imports concrete transports. Azure client libraries are imported
inside the iothub branch so the in-memory backend runs without them.
"""
from __future__ import annotations

from dataclasses import dataclass

from harness.app.config.settings import Settings
from harness.app.constants import TRANSPORT_BACKEND, TransportProtocol
from harness.app.domain.models import DeviceIdentity
from harness.app.ports.device_connection import ConnectionFactory, DeviceConnection
from harness.app.ports.device_registry import DeviceRegistry
from harness.app.ports.remote_sender import RemoteSender


@dataclass(frozen=True)
class Transport:
    registry: DeviceRegistry
    sender: RemoteSender
    connection_factory: ConnectionFactory


def create_transport(settings: Settings) -> Transport:
    backend = settings.transport_backend.strip().lower()

    if backend == TRANSPORT_BACKEND.IOTHUB:
        from harness.app.infrastructure.iothub.registry import IoTHubDeviceRegistry
        from harness.app.infrastructure.iothub.sender import IoTHubRemoteSender

        return Transport(
            registry=IoTHubDeviceRegistry(settings.iothub_connection_string),
            sender=IoTHubRemoteSender(settings.iothub_connection_string),
            connection_factory=_IoTHubConnectionFactory(settings),
        )

    if backend == TRANSPORT_BACKEND.INMEMORY:
        from harness.app.infrastructure.inmemory.loopback_hub import InMemoryHub

        hub = InMemoryHub(delivery_delay_seconds=settings.inmemory_delivery_delay_ms / 1000.0)
        return Transport(registry=hub, sender=hub, connection_factory=hub.connection)

    raise ValueError(f"Unsupported transport backend: {backend}")


class _IoTHubConnectionFactory:
    """Builds a device connection for the requested protocol."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def __call__(self, protocol: TransportProtocol, identity: DeviceIdentity) -> DeviceConnection:
        if protocol == TransportProtocol.HTTPS:
            from harness.app.infrastructure.iothub.https_connection import HttpsDeviceConnection

            return HttpsDeviceConnection(
                identity,
                request_timeout_seconds=self._settings.http_request_timeout_seconds,
                sas_token_ttl_seconds=self._settings.sas_token_ttl_seconds,
            )
        if protocol == TransportProtocol.AMQPS:
            from harness.app.infrastructure.iothub.amqp_connection import AmqpDeviceConnection

            return AmqpDeviceConnection(identity, sas_token_ttl_seconds=self._settings.sas_token_ttl_seconds)
        if protocol == TransportProtocol.MQTT:
            from harness.app.infrastructure.iothub.mqtt_connection import MqttDeviceConnection

            return MqttDeviceConnection(identity)
        raise ValueError(f"Unsupported protocol: {protocol}")
