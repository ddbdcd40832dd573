"""Port: service-side cloud-to-device send. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Callable, Protocol

from harness.app.domain.models import Message

RemoteSend = Callable[[str, Message], None]


class RemoteSender(Protocol):
    def send(self, device_id: str, message: Message) -> None:
        """Send message to device_id; network and service errors propagate."""
        ...

    def close(self) -> None: ...
