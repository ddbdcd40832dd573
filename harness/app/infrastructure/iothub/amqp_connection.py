"""
AMQPS device connection: a uamqp ReceiveClient on the device-bound link.

The uamqp client is not thread-safe, so it is opened, pumped and closed on one
dedicated receive thread. open() blocks until that thread has connected (or
failed) so connection errors surface on the caller's thread as TransportError.
Messages are received with auto_complete disabled and settled by ack()
(message.accept()).
"""
from __future__ import annotations

import threading
from typing import Any, Mapping

import uamqp
from uamqp import authentication
from loguru import logger

from harness.app.core import SERVICE_NAME
from harness.app.domain.errors import TransportError
from harness.app.domain.models import DeviceIdentity
from harness.app.infrastructure.iothub.connection_string import generate_sas_token
from harness.app.ports.device_connection import ReceiveHandler

RECEIVE_BATCH_TIMEOUT_MS = 1000
OPEN_TIMEOUT_SECONDS = 60.0
STOP_JOIN_TIMEOUT_SECONDS = 5.0


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class _AmqpMessageAdapter:
    """Adapts uamqp.Message to the IncomingMessage port."""

    def __init__(self, message: uamqp.Message) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return b"".join(bytes(chunk) for chunk in self._message.get_data())

    @property
    def properties(self) -> Mapping[str, str]:
        app_properties = self._message.application_properties or {}
        return {_text(k): _text(v) for k, v in app_properties.items()}

    def ack(self) -> None:
        self._message.accept()


class AmqpDeviceConnection:
    """DeviceConnection over AMQPS; handlers run on the receive thread."""

    def __init__(self, identity: DeviceIdentity, *, sas_token_ttl_seconds: int = 3600) -> None:
        self._identity = identity
        self._sas_ttl = sas_token_ttl_seconds
        self._handler: ReceiveHandler | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._opened = threading.Event()
        self._open_error: BaseException | None = None
        self._thread: threading.Thread | None = None

    @property
    def source(self) -> str:
        return f"amqps://{self._identity.host_name}/devices/{self._identity.device_id}/messages/devicebound"

    def _build_client(self) -> uamqp.ReceiveClient:
        uri = f"{self._identity.host_name}/devices/{self._identity.device_id}"
        sas = generate_sas_token(uri, self._identity.primary_key, ttl_seconds=self._sas_ttl)
        auth = authentication.SASTokenAuth(
            audience=uri,
            uri=uri,
            token=sas.token,
            expires_at=sas.expires_at,
        )
        return uamqp.ReceiveClient(
            self.source,
            auth=auth,
            auto_complete=False,
            prefetch=1,
            client_name=self._identity.device_id,
        )

    def open(self, options: Mapping[str, Any] | None = None) -> None:
        self._stop.clear()
        self._opened.clear()
        self._open_error = None
        self._thread = threading.Thread(
            target=self._receive_loop,
            name=f"amqp-receive-{self._identity.device_id}",
            daemon=True,
        )
        self._thread.start()
        if not self._opened.wait(OPEN_TIMEOUT_SECONDS):
            self._stop.set()
            raise TransportError(f"amqp open timed out for {self._identity.device_id}")
        if self._open_error is not None:
            raise TransportError(
                f"amqp open failed for {self._identity.device_id}: {self._open_error}"
            ) from self._open_error
        _log("amqp_connected", device_id=self._identity.device_id)

    def register_receive_callback(self, handler: ReceiveHandler) -> None:
        with self._lock:
            self._handler = handler

    def _receive_loop(self) -> None:
        client = None
        try:
            client = self._build_client()
            client.open()
        except Exception as exc:
            self._open_error = exc
            self._close_client(client)
            self._opened.set()
            return
        self._opened.set()

        try:
            while not self._stop.is_set():
                with self._lock:
                    handler = self._handler
                if handler is None:
                    self._stop.wait(RECEIVE_BATCH_TIMEOUT_MS / 1000.0)
                    continue
                try:
                    batch = client.receive_message_batch(max_batch_size=1, timeout=RECEIVE_BATCH_TIMEOUT_MS)
                except Exception as exc:
                    if self._stop.is_set():
                        break
                    logger.warning("amqp receive failed: {}", exc)
                    self._stop.wait(RECEIVE_BATCH_TIMEOUT_MS / 1000.0)
                    continue
                for message in batch:
                    handler(_AmqpMessageAdapter(message))
        finally:
            self._close_client(client)

    @staticmethod
    def _close_client(client: uamqp.ReceiveClient | None) -> None:
        if client is None:
            return
        try:
            client.close()
        except Exception as exc:
            logger.warning("amqp client close failed: {}", exc)

    def _stop_receiving(self, join_timeout: float) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=join_timeout)

    def close(self) -> None:
        self._stop_receiving(STOP_JOIN_TIMEOUT_SECONDS)

    def close_now(self) -> None:
        # The receive thread closes the client on its way out (within one batch timeout).
        self._stop_receiving(0.0)
