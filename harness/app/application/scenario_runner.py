from __future__ import annotations

import time
from typing import Any, Callable

from loguru import logger

from harness.app.constants import (
    MINIMUM_POLLING_INTERVAL_OPTION,
    ScenarioResult,
    TransportProtocol,
    WaitOutcome,
)
from harness.app.core import SERVICE_NAME
from harness.app.domain.callback_dispatcher import CallbackDispatcher
from harness.app.domain.message_fixture import build_message
from harness.app.domain.models import ScenarioReport
from harness.app.domain.receipt_signal import ReceiptSignal
from harness.app.domain.receive_waiter import DEFAULT_POLL_INTERVAL_SECONDS, ReceiveWaiter
from harness.app.ports.device_connection import DeviceConnection
from harness.app.ports.remote_sender import RemoteSend

DEFAULT_RECEIVE_TIMEOUT_SECONDS = 60.0
DEFAULT_GRACE_PERIOD_SECONDS = 0.2
DEFAULT_HTTPS_MINIMUM_POLLING_INTERVAL_MS = 1000


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class ScenarioRunner:
    """
    Runs one send-and-verify cycle: open, register, send, wait, judge, tear down.

    Registration happens before the send and the send before the wait, so a fast
    delivery can never beat the callback. Every scenario gets its own
    ReceiptSignal. Exceptions from open/register/send become TRANSPORT_ERROR;
    the connection is always closed, after a short grace period once the wait
    has run so in-flight acknowledgements can drain.
    """

    def __init__(
        self,
        waiter: ReceiveWaiter | None = None,
        *,
        receive_timeout_seconds: float = DEFAULT_RECEIVE_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        grace_period_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS,
        https_minimum_polling_interval_ms: int = DEFAULT_HTTPS_MINIMUM_POLLING_INTERVAL_MS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._waiter = waiter or ReceiveWaiter()
        self._receive_timeout = float(receive_timeout_seconds)
        self._poll_interval = float(poll_interval_seconds)
        self._grace_period = float(grace_period_seconds)
        self._https_minimum_polling_interval_ms = int(https_minimum_polling_interval_ms)
        self._sleep = sleep

    def connection_options(self, protocol: TransportProtocol) -> dict[str, Any]:
        if protocol == TransportProtocol.HTTPS:
            return {MINIMUM_POLLING_INTERVAL_OPTION: self._https_minimum_polling_interval_ms}
        return {}

    def run(
        self,
        protocol: TransportProtocol,
        connection: DeviceConnection,
        remote_send: RemoteSend,
        *,
        device_id: str,
    ) -> ScenarioReport:
        started = time.monotonic()
        signal = ReceiptSignal()
        waited = False
        result = ScenarioResult.TRANSPORT_ERROR
        error: str | None = None
        _log("scenario_started", protocol=protocol.value, device_id=device_id)

        try:
            message = build_message(protocol)
            connection.open(self.connection_options(protocol))
            _log("connection_opened", protocol=protocol.value, device_id=device_id)

            dispatcher = CallbackDispatcher.for_protocol(protocol, signal, message.properties)
            connection.register_receive_callback(dispatcher)
            _log("callback_registered", protocol=protocol.value, variant=dispatcher.variant.value)

            remote_send(device_id, message)
            _log("message_sent", protocol=protocol.value, device_id=device_id)

            outcome = self._waiter.wait(signal, self._receive_timeout, self._poll_interval)
            waited = True
            result = self._map_outcome(outcome, signal)
            if result == ScenarioResult.TIMEOUT:
                error = "receive timed out"
            elif result == ScenarioResult.CONTENT_MISMATCH:
                error = "content verification failed"
        except Exception as exc:
            logger.warning("scenario transport failure ({}): {}", protocol.value, exc)
            result = ScenarioResult.TRANSPORT_ERROR
            error = _describe(exc)
        finally:
            if waited:
                self._sleep(self._grace_period)
            try:
                connection.close_now()
            except Exception as exc:
                logger.warning("connection close failed ({}): {}", protocol.value, exc)
                if result == ScenarioResult.SUCCESS:
                    result = ScenarioResult.TRANSPORT_ERROR
                    error = _describe(exc)

        report = ScenarioReport(
            protocol=protocol,
            device_id=device_id,
            result=result,
            error=error,
            elapsed_seconds=time.monotonic() - started,
        )
        _log(
            "scenario_finished",
            protocol=protocol.value,
            device_id=device_id,
            result=report.result.value,
            error=report.error,
            elapsed_seconds=round(report.elapsed_seconds, 3),
        )
        return report

    @staticmethod
    def _map_outcome(outcome: WaitOutcome, signal: ReceiptSignal) -> ScenarioResult:
        if outcome == WaitOutcome.TIMED_OUT:
            return ScenarioResult.TIMEOUT
        if signal.get():
            return ScenarioResult.SUCCESS
        return ScenarioResult.CONTENT_MISMATCH
