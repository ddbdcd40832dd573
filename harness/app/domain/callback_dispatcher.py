"""Receive callback: judges a delivered message and records the verdict.

The transport invokes the dispatcher on its own thread. Nothing raised here can
reach the scenario thread, so every failure becomes a False verdict instead of
an exception. The message is always acknowledged after the verdict is stored: a
content mismatch fails the scenario, not the delivery.
"""
from __future__ import annotations

import threading
from typing import Any, Iterable

from loguru import logger

from harness.app.constants import DispatchVariant, TransportProtocol
from harness.app.core import SERVICE_NAME
from harness.app.domain.property_matcher import compare
from harness.app.domain.receipt_signal import ReceiptSignal
from harness.app.ports.incoming_message import IncomingMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class CallbackDispatcher:
    """Receive handler tagged with a DispatchVariant.

    PROPERTY_VERIFYING compares received properties with the expected set;
    PRESENCE_ONLY accepts any delivery.
    """

    def __init__(
        self,
        variant: DispatchVariant,
        signal: ReceiptSignal,
        expected_properties: Iterable[tuple[str, str]] = (),
    ) -> None:
        self._variant = variant
        self._signal = signal
        self._expected = tuple(expected_properties)
        self._deliveries = 0
        self._deliveries_lock = threading.Lock()

    @classmethod
    def for_protocol(
        cls,
        protocol: TransportProtocol,
        signal: ReceiptSignal,
        expected_properties: Iterable[tuple[str, str]] = (),
    ) -> "CallbackDispatcher":
        if protocol.supports_properties:
            return cls(DispatchVariant.PROPERTY_VERIFYING, signal, expected_properties)
        return cls(DispatchVariant.PRESENCE_ONLY, signal)

    @property
    def variant(self) -> DispatchVariant:
        return self._variant

    @property
    def deliveries(self) -> int:
        with self._deliveries_lock:
            return self._deliveries

    def __call__(self, message: IncomingMessage) -> None:
        with self._deliveries_lock:
            self._deliveries += 1
        try:
            verdict = self._judge(message)
        except Exception as exc:
            logger.exception("received message could not be verified: {}", exc)
            verdict = False
        self._signal.set(verdict)

        try:
            message.ack()
        except Exception as exc:
            logger.warning("message ack failed: {}", exc)

    def _judge(self, message: IncomingMessage) -> bool:
        if self._variant == DispatchVariant.PRESENCE_ONLY:
            # Any arrival counts; the message itself is not inspected.
            _log("message_received", variant=self._variant.value)
            return True

        result = compare(self._expected, message.properties)
        _log(
            "message_received",
            variant=self._variant.value,
            properties_matched=result.matched,
            mismatched_names=list(result.mismatched_names),
        )
        return result.matched
