"""In-memory hub for tests and local runs.

Acts as device registry, remote sender and connection factory at once. Sends are
delivered on a separate timer thread, like a real transport invoking the
receive callback out of band. Messages sent before a handler is registered are
queued per device and flushed on registration.
"""
from __future__ import annotations

import base64
import threading
from collections import defaultdict, deque
from typing import Any, Mapping

from loguru import logger

from harness.app.constants import TransportProtocol
from harness.app.core import SERVICE_NAME
from harness.app.domain.errors import TransportError
from harness.app.domain.models import DeviceIdentity, Message
from harness.app.ports.device_connection import ReceiveHandler

DEFAULT_HOST_NAME = "inmemory.azure-devices.net"


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class InMemoryIncomingMessage:
    def __init__(self, message: Message, *, keep_properties: bool = True) -> None:
        self._message = message
        self._keep_properties = keep_properties
        self.acked = False

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def properties(self) -> Mapping[str, str]:
        if not self._keep_properties:
            return {}
        return self._message.properties_dict()

    def ack(self) -> None:
        self.acked = True


class InMemoryDeviceConnection:
    """DeviceConnection bound to an InMemoryHub device."""

    def __init__(self, hub: "InMemoryHub", protocol: TransportProtocol, identity: DeviceIdentity) -> None:
        self._hub = hub
        self.protocol = protocol
        self.identity = identity
        self.options: dict[str, Any] = {}
        self.is_open = False
        self._handler: ReceiveHandler | None = None

    def open(self, options: Mapping[str, Any] | None = None) -> None:
        if not self._hub.has_device(self.identity.device_id):
            raise TransportError(f"unknown device: {self.identity.device_id}")
        self.options = dict(options or {})
        self.is_open = True

    def register_receive_callback(self, handler: ReceiveHandler) -> None:
        if not self.is_open:
            raise TransportError("connection not open")
        self._handler = handler
        self._hub.attach(self)

    def dispatch(self, incoming: InMemoryIncomingMessage) -> bool:
        handler = self._handler
        if not self.is_open or handler is None:
            return False
        handler(incoming)
        return True

    def close(self) -> None:
        self.close_now()

    def close_now(self) -> None:
        self.is_open = False
        self._hub.detach(self)


class InMemoryHub:
    """Registry + sender + connection factory backed by process memory."""

    def __init__(
        self,
        *,
        host_name: str = DEFAULT_HOST_NAME,
        delivery_delay_seconds: float = 0.05,
        drop_mqtt_properties: bool = False,
    ) -> None:
        self._host_name = host_name
        self._delay = max(delivery_delay_seconds, 0.0)
        self._drop_mqtt_properties = drop_mqtt_properties
        self._lock = threading.RLock()
        self._devices: dict[str, DeviceIdentity] = {}
        self._connections: dict[str, InMemoryDeviceConnection] = {}
        self._pending: dict[str, deque[Message]] = defaultdict(deque)
        self._timers: list[threading.Timer] = []
        self.delivered: list[tuple[str, InMemoryIncomingMessage]] = []

    # DeviceRegistry

    def create_device(self, device_id: str) -> DeviceIdentity:
        with self._lock:
            if device_id in self._devices:
                raise TransportError(f"device already exists: {device_id}")
            key = base64.b64encode(device_id.encode("utf-8")).decode("ascii")
            identity = DeviceIdentity(device_id=device_id, host_name=self._host_name, primary_key=key)
            self._devices[device_id] = identity
            return identity

    def delete_device(self, device_id: str) -> None:
        with self._lock:
            if self._devices.pop(device_id, None) is None:
                raise TransportError(f"device not found: {device_id}")
            self._pending.pop(device_id, None)
            self._connections.pop(device_id, None)

    def has_device(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._devices

    # RemoteSender

    def send(self, device_id: str, message: Message) -> None:
        if not self.has_device(device_id):
            raise TransportError(f"device not found: {device_id}")
        timer = threading.Timer(self._delay, self.deliver, args=(device_id, message))
        timer.daemon = True
        with self._lock:
            self._timers.append(timer)
        timer.start()

    @property
    def in_flight(self) -> int:
        """Sends whose delivery timer has not fired yet."""
        with self._lock:
            return len(self._timers)

    def deliver(self, device_id: str, message: Message) -> None:
        """Hand message to the device's connection now, or queue it until one attaches."""
        current = threading.current_thread()
        with self._lock:
            self._timers = [t for t in self._timers if t is not current and not t.finished.is_set()]
            connection = self._connections.get(device_id)
            if connection is None:
                if device_id in self._devices:
                    self._pending[device_id].append(message)
                return
        self._dispatch(connection, message)

    def _dispatch(self, connection: InMemoryDeviceConnection, message: Message) -> None:
        keep = not (self._drop_mqtt_properties and connection.protocol == TransportProtocol.MQTT)
        incoming = InMemoryIncomingMessage(message, keep_properties=keep)
        if connection.dispatch(incoming):
            with self._lock:
                self.delivered.append((connection.identity.device_id, incoming))
            _log("inmemory_delivered", device_id=connection.identity.device_id)
        else:
            logger.warning("inmemory delivery dropped for {}", connection.identity.device_id)

    # ConnectionFactory

    def connection(self, protocol: TransportProtocol, identity: DeviceIdentity) -> InMemoryDeviceConnection:
        return InMemoryDeviceConnection(self, protocol, identity)

    def attach(self, connection: InMemoryDeviceConnection) -> None:
        device_id = connection.identity.device_id
        with self._lock:
            self._connections[device_id] = connection
            queued = list(self._pending.pop(device_id, ()))
        for message in queued:
            self._dispatch(connection, message)

    def detach(self, connection: InMemoryDeviceConnection) -> None:
        with self._lock:
            if self._connections.get(connection.identity.device_id) is connection:
                del self._connections[connection.identity.device_id]

    def close(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
