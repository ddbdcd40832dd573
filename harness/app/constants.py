"""Harness-level constants shared across modules."""
from __future__ import annotations

from enum import Enum


class TransportProtocol(str, Enum):
    HTTPS = "HTTPS"
    AMQPS = "AMQPS"
    MQTT = "MQTT"

    @property
    def supports_properties(self) -> bool:
        return self in (TransportProtocol.HTTPS, TransportProtocol.AMQPS)


class WaitOutcome(str, Enum):
    DELIVERED = "DELIVERED"
    TIMED_OUT = "TIMED_OUT"


class ScenarioResult(str, Enum):
    SUCCESS = "SUCCESS"
    TIMEOUT = "TIMEOUT"
    CONTENT_MISMATCH = "CONTENT_MISMATCH"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class DispatchVariant(str, Enum):
    PROPERTY_VERIFYING = "PROPERTY_VERIFYING"
    PRESENCE_ONLY = "PRESENCE_ONLY"


class TRANSPORT_BACKEND:
    IOTHUB = "iothub"
    INMEMORY = "inmemory"


# Connection option recognized by the HTTPS transport only.
MINIMUM_POLLING_INTERVAL_OPTION = "minimum_polling_interval_ms"
