"""Port: device identity provisioning. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol

from harness.app.domain.models import DeviceIdentity


class DeviceRegistry(Protocol):
    def create_device(self, device_id: str) -> DeviceIdentity: ...

    def delete_device(self, device_id: str) -> None: ...

    def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
