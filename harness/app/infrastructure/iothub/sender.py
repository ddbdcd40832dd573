"""IoT Hub implementation of RemoteSender: service-side cloud-to-device send."""
from __future__ import annotations

from typing import Any

from azure.iot.hub import IoTHubRegistryManager

from harness.app.domain.errors import TransportError
from harness.app.domain.models import Message
from harness.app.infrastructure.iothub.registry import disconnect_registry_manager


class IoTHubRemoteSender:
    """Sends C2D messages through the registry manager's AMQP service client."""

    def __init__(self, connection_string: str, *, manager: Any | None = None) -> None:
        self._manager = manager or IoTHubRegistryManager.from_connection_string(connection_string)

    def send(self, device_id: str, message: Message) -> None:
        try:
            self._manager.send_c2d_message(
                device_id,
                message.text,
                properties=message.properties_dict(),
            )
        except Exception as exc:
            raise TransportError(f"c2d send to {device_id} failed: {exc}") from exc

    def close(self) -> None:
        disconnect_registry_manager(self._manager)
