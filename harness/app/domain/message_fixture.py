"""Builds the messages sent in each scenario and the properties expected back."""
from __future__ import annotations

from harness.app.constants import TransportProtocol
from harness.app.domain.models import Message

EXPECTED_PROPERTIES: tuple[tuple[str, str], ...] = (
    ("name1", "value1"),
    ("name2", "value2"),
    ("name3", "value3"),
)

PAYLOAD_TEMPLATE = "Python service e2e test message to be received over {protocol} protocol"


def build_message(protocol: TransportProtocol) -> Message:
    payload = PAYLOAD_TEMPLATE.format(protocol=protocol.value).encode("utf-8")
    return Message(body=payload, properties=expected_properties(protocol))


def expected_properties(protocol: TransportProtocol) -> tuple[tuple[str, str], ...]:
    # MQTT carries no custom properties in these scenarios.
    if not protocol.supports_properties:
        return ()
    return EXPECTED_PROPERTIES
