"""MQTT device connection using the azure-iot-device synchronous client."""
from __future__ import annotations

from typing import Any, Mapping

from azure.iot.device import IoTHubDeviceClient
from azure.iot.device import Message as DeviceMessage
from loguru import logger

from harness.app.core import SERVICE_NAME
from harness.app.domain.errors import TransportError
from harness.app.domain.models import DeviceIdentity
from harness.app.ports.device_connection import ReceiveHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class _MqttMessageAdapter:
    """Adapts azure.iot.device.Message to the IncomingMessage port."""

    def __init__(self, message: DeviceMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        data = self._message.data
        if data is None:
            return b""
        if isinstance(data, str):
            return data.encode("utf-8")
        return bytes(data)

    @property
    def properties(self) -> Mapping[str, str]:
        return dict(self._message.custom_properties or {})

    def ack(self) -> None:
        # The MQTT client acknowledges (PUBACK) when the handler returns.
        return


class MqttDeviceConnection:
    """DeviceConnection over MQTT; handlers run on the client's handler thread."""

    def __init__(self, identity: DeviceIdentity, *, client: Any | None = None) -> None:
        self._identity = identity
        self._client = client or IoTHubDeviceClient.create_from_connection_string(identity.connection_string)
        self._connected = False

    def open(self, options: Mapping[str, Any] | None = None) -> None:
        try:
            self._client.connect()
        except Exception as exc:
            raise TransportError(f"mqtt connect failed for {self._identity.device_id}: {exc}") from exc
        self._connected = True
        _log("mqtt_connected", device_id=self._identity.device_id)

    def register_receive_callback(self, handler: ReceiveHandler) -> None:
        def on_message_received(message: DeviceMessage) -> None:
            handler(_MqttMessageAdapter(message))

        try:
            self._client.on_message_received = on_message_received
        except Exception as exc:
            raise TransportError(f"mqtt receive registration failed: {exc}") from exc

    def close(self) -> None:
        if self._connected:
            try:
                self._client.disconnect()
            except Exception as exc:
                logger.warning("mqtt disconnect failed (continuing to shutdown): {}", exc)
            self._connected = False
        self.close_now()

    def close_now(self) -> None:
        self._connected = False
        try:
            self._client.shutdown()
        except Exception as exc:
            raise TransportError(f"mqtt shutdown failed: {exc}") from exc
