"""Port: abstraction for a message delivered to the device. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Mapping, Protocol


class IncomingMessage(Protocol):
    """Transport-agnostic received message. Dispatchers use this; transport adapters implement it."""

    @property
    def body(self) -> bytes: ...

    @property
    def properties(self) -> Mapping[str, str]: ...

    def ack(self) -> None:
        """Tell the transport processing is complete (no redelivery)."""
        ...
