from __future__ import annotations

import threading
from typing import Any, Callable, Mapping

import pytest

from harness.app.application.scenario_runner import ScenarioRunner
from harness.app.domain.models import DeviceIdentity, Message
from harness.app.domain.receive_waiter import ReceiveWaiter

TEST_HOST = "test-hub.azure-devices.net"
# base64 of 32 bytes; valid SAS signing key.
TEST_KEY = "a2V5a2V5a2V5a2V5a2V5a2V5a2V5a2V5a2V5a2V5a2U="


class FakeIncomingMessage:
    """Implements IncomingMessage for tests; records acks and can fail on body, property or ack access."""

    def __init__(
        self,
        body: bytes = b"hello",
        properties: Mapping[str, str] | None = None,
        *,
        raise_on_body: Exception | None = None,
        raise_on_properties: Exception | None = None,
        raise_on_ack: Exception | None = None,
    ) -> None:
        self._body = body
        self._properties = dict(properties or {})
        self._raise_on_body = raise_on_body
        self._raise_on_properties = raise_on_properties
        self._raise_on_ack = raise_on_ack
        self.acked = False

    @property
    def body(self) -> bytes:
        if self._raise_on_body is not None:
            raise self._raise_on_body
        return self._body

    @property
    def properties(self) -> Mapping[str, str]:
        if self._raise_on_properties is not None:
            raise self._raise_on_properties
        return dict(self._properties)

    def ack(self) -> None:
        if self._raise_on_ack is not None:
            raise self._raise_on_ack
        self.acked = True


class FakeConnection:
    """Implements DeviceConnection for tests. Records calls in order; delivers on a separate thread."""

    def __init__(
        self,
        *,
        raise_on_open: Exception | None = None,
        raise_on_register: Exception | None = None,
        raise_on_close: Exception | None = None,
    ) -> None:
        self.calls: list[str] = []
        self.options: dict[str, Any] | None = None
        self.handler: Callable[[Any], None] | None = None
        self.delivered: list[FakeIncomingMessage] = []
        self._raise_on_open = raise_on_open
        self._raise_on_register = raise_on_register
        self._raise_on_close = raise_on_close
        self._threads: list[threading.Thread] = []

    def open(self, options: Mapping[str, Any] | None = None) -> None:
        self.calls.append("open")
        if self._raise_on_open is not None:
            raise self._raise_on_open
        self.options = dict(options or {})

    def register_receive_callback(self, handler: Callable[[Any], None]) -> None:
        self.calls.append("register")
        if self._raise_on_register is not None:
            raise self._raise_on_register
        self.handler = handler

    def deliver(self, message: FakeIncomingMessage, *, delay: float = 0.0) -> threading.Thread:
        def _run() -> None:
            if delay:
                threading.Event().wait(delay)
            assert self.handler is not None, "delivery before callback registration"
            self.delivered.append(message)
            self.handler(message)

        thread = threading.Thread(target=_run, daemon=True)
        self._threads.append(thread)
        thread.start()
        return thread

    def join_deliveries(self, timeout: float = 2.0) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def close(self) -> None:
        self.close_now()

    def close_now(self) -> None:
        self.calls.append("close_now")
        if self._raise_on_close is not None:
            raise self._raise_on_close


class CapturingSender:
    """Implements RemoteSender; records sends and (optionally) loops them back to a FakeConnection."""

    def __init__(
        self,
        connection: FakeConnection | None = None,
        *,
        tamper: Callable[[dict[str, str]], dict[str, str]] | None = None,
        raise_on_send: Exception | None = None,
        delay: float = 0.01,
    ) -> None:
        self.connection = connection
        self.sent: list[tuple[str, Message]] = []
        self._tamper = tamper
        self._raise_on_send = raise_on_send
        self._delay = delay

    def send(self, device_id: str, message: Message) -> None:
        if self.connection is not None:
            self.connection.calls.append("send")
        if self._raise_on_send is not None:
            raise self._raise_on_send
        self.sent.append((device_id, message))
        if self.connection is not None:
            properties = message.properties_dict()
            if self._tamper is not None:
                properties = self._tamper(properties)
            self.connection.deliver(FakeIncomingMessage(message.body, properties), delay=self._delay)

    def close(self) -> None:
        return


class FakeRegistry:
    """Implements DeviceRegistry for tests; can fail creates or deletes per device id substring."""

    def __init__(self, *, fail_create_for: str | None = None, fail_delete: Exception | None = None) -> None:
        self.created: list[str] = []
        self.deleted: list[str] = []
        self._fail_create_for = fail_create_for
        self._fail_delete = fail_delete
        self._lock = threading.Lock()

    def create_device(self, device_id: str) -> DeviceIdentity:
        if self._fail_create_for and self._fail_create_for in device_id:
            raise RuntimeError("quota exceeded")
        with self._lock:
            self.created.append(device_id)
        return DeviceIdentity(device_id=device_id, host_name=TEST_HOST, primary_key=TEST_KEY)

    def delete_device(self, device_id: str) -> None:
        with self._lock:
            self.deleted.append(device_id)
        if self._fail_delete is not None:
            raise self._fail_delete

    def close(self) -> None:
        return


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def identity() -> DeviceIdentity:
    return DeviceIdentity(device_id="device-1", host_name=TEST_HOST, primary_key=TEST_KEY)


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def fast_runner(sleep_recorder: SleepRecorder) -> ScenarioRunner:
    return ScenarioRunner(
        ReceiveWaiter(),
        receive_timeout_seconds=2.0,
        poll_interval_seconds=0.02,
        grace_period_seconds=0.2,
        https_minimum_polling_interval_ms=1000,
        sleep=sleep_recorder,
    )
