"""Port: device-side connection that receives cloud-to-device messages."""
from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol

from harness.app.constants import TransportProtocol
from harness.app.domain.models import DeviceIdentity
from harness.app.ports.incoming_message import IncomingMessage

ReceiveHandler = Callable[[IncomingMessage], None]


class DeviceConnection(Protocol):
    """Opens a transport for one device and invokes a handler per delivered message.

    The handler is called on a thread owned by the transport, never on the
    caller's thread.
    """

    def open(self, options: Mapping[str, Any] | None = None) -> None: ...

    def register_receive_callback(self, handler: ReceiveHandler) -> None: ...

    def close(self) -> None:
        """Graceful close; waits for in-flight work."""
        ...

    def close_now(self) -> None:
        """Immediate close; in-flight deliveries may be dropped."""
        ...


class ConnectionFactory(Protocol):
    def __call__(self, protocol: TransportProtocol, identity: DeviceIdentity) -> DeviceConnection: ...
