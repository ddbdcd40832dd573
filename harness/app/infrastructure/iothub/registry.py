"""IoT Hub implementation of DeviceRegistry (azure-iot-hub registry manager)."""
from __future__ import annotations

import base64
import secrets
from typing import Any

from azure.iot.hub import IoTHubRegistryManager
from loguru import logger

from harness.app.core import SERVICE_NAME
from harness.app.domain.errors import TransportError
from harness.app.domain.models import DeviceIdentity
from harness.app.infrastructure.iothub.connection_string import parse_connection_string


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _generate_key() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def disconnect_registry_manager(manager: Any) -> None:
    """The registry manager holds an AMQP service client; release it when exposed."""
    amqp_client = getattr(manager, "amqp_svc_client", None)
    disconnect = getattr(amqp_client, "disconnect_sync", None)
    if callable(disconnect):
        disconnect()


class IoTHubDeviceRegistry:
    """Creates SAS-authenticated device identities and deletes them at teardown."""

    def __init__(self, connection_string: str, *, manager: Any | None = None) -> None:
        self._host_name = parse_connection_string(connection_string).host_name
        self._manager = manager or IoTHubRegistryManager.from_connection_string(connection_string)

    def create_device(self, device_id: str) -> DeviceIdentity:
        primary_key = _generate_key()
        try:
            self._manager.create_device_with_sas(device_id, primary_key, _generate_key(), "enabled")
        except Exception as exc:
            raise TransportError(f"create device {device_id} failed: {exc}") from exc
        _log("iothub_device_created", device_id=device_id)
        return DeviceIdentity(device_id=device_id, host_name=self._host_name, primary_key=primary_key)

    def delete_device(self, device_id: str) -> None:
        try:
            self._manager.delete_device(device_id)
        except Exception as exc:
            raise TransportError(f"delete device {device_id} failed: {exc}") from exc

    def close(self) -> None:
        disconnect_registry_manager(self._manager)
