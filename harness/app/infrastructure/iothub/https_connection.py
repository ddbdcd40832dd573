"""
HTTPS device connection: polls the IoT Hub device-bound message endpoint with httpx.

Lifecycle:
  open() builds the httpx client and starts a daemon polling thread.
  The thread issues GET /devices/{id}/messages/deviceBound every
  minimum_polling_interval_ms once a handler is registered; 204 means nothing is
  queued. A 200 response is handed to the handler, and ack() completes it with
  DELETE .../deviceBound/{etag}.
  close()/close_now() stop the thread and close the client.

Concurrency:
  The handler runs on the polling thread. Poll errors are logged and the loop
  continues; they never reach the scenario thread.
"""
from __future__ import annotations

import threading
from typing import Any, Mapping
from urllib.parse import quote

import httpx
from loguru import logger

from harness.app.constants import MINIMUM_POLLING_INTERVAL_OPTION
from harness.app.core import SERVICE_NAME
from harness.app.domain.errors import TransportError
from harness.app.domain.models import DeviceIdentity
from harness.app.infrastructure.iothub.connection_string import generate_sas_token
from harness.app.ports.device_connection import ReceiveHandler

API_VERSION = "2020-09-30"
APP_PROPERTY_PREFIX = "iothub-app-"
DEFAULT_POLLING_INTERVAL_MS = 25 * 60 * 1000
STOP_JOIN_TIMEOUT_SECONDS = 5.0


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def properties_from_headers(raw_headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """Custom properties travel as `iothub-app-<name>` headers; keep the name's case."""
    properties: dict[str, str] = {}
    prefix_len = len(APP_PROPERTY_PREFIX)
    for raw_key, raw_value in raw_headers:
        key = raw_key.decode("latin-1")
        if key.lower().startswith(APP_PROPERTY_PREFIX):
            properties[key[prefix_len:]] = raw_value.decode("latin-1")
    return properties


class _HttpsMessageAdapter:
    """Adapts a device-bound httpx.Response to the IncomingMessage port."""

    def __init__(self, connection: "HttpsDeviceConnection", response: httpx.Response) -> None:
        self._connection = connection
        self._body = response.content
        self._properties = properties_from_headers(response.headers.raw)
        self._etag = response.headers.get("etag", "").strip('"')

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def properties(self) -> Mapping[str, str]:
        return dict(self._properties)

    def ack(self) -> None:
        self._connection.complete(self._etag)


class HttpsDeviceConnection:
    """DeviceConnection over HTTPS long polling."""

    def __init__(
        self,
        identity: DeviceIdentity,
        *,
        request_timeout_seconds: float = 30.0,
        sas_token_ttl_seconds: int = 3600,
        client: httpx.Client | None = None,
    ) -> None:
        self._identity = identity
        self._request_timeout = request_timeout_seconds
        self._sas_ttl = sas_token_ttl_seconds
        self._client = client
        self._handler: ReceiveHandler | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._interval_seconds = DEFAULT_POLLING_INTERVAL_MS / 1000.0

    @property
    def _base_url(self) -> str:
        device = quote(self._identity.device_id, safe="")
        return f"https://{self._identity.host_name}/devices/{device}/messages/deviceBound"

    def _auth_headers(self) -> dict[str, str]:
        uri = f"{self._identity.host_name}/devices/{self._identity.device_id}"
        token = generate_sas_token(uri, self._identity.primary_key, ttl_seconds=self._sas_ttl)
        return {"Authorization": token.token}

    def open(self, options: Mapping[str, Any] | None = None) -> None:
        opts = dict(options or {})
        interval_ms = int(opts.get(MINIMUM_POLLING_INTERVAL_OPTION, DEFAULT_POLLING_INTERVAL_MS))
        if interval_ms <= 0:
            raise TransportError(f"{MINIMUM_POLLING_INTERVAL_OPTION} must be positive")
        self._interval_seconds = interval_ms / 1000.0

        if self._client is None:
            self._client = httpx.Client(timeout=self._request_timeout)
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name=f"https-poll-{self._identity.device_id}",
            daemon=True,
        )
        self._thread.start()
        _log("https_polling_started", device_id=self._identity.device_id, interval_ms=interval_ms)

    def register_receive_callback(self, handler: ReceiveHandler) -> None:
        with self._lock:
            self._handler = handler

    def _poll_loop(self) -> None:
        while not self._stop.is_set():
            with self._lock:
                handler = self._handler
            if handler is not None:
                try:
                    message = self.receive_once()
                except Exception as exc:
                    logger.warning("https poll failed: {}", exc)
                    message = None
                if message is not None:
                    handler(message)
            self._stop.wait(self._interval_seconds)

    def receive_once(self) -> _HttpsMessageAdapter | None:
        """Fetch at most one queued message; None when the queue is empty."""
        if self._client is None:
            raise TransportError("https connection not open")
        try:
            response = self._client.get(
                self._base_url,
                params={"api-version": API_VERSION},
                headers=self._auth_headers(),
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"timeout while polling {self._identity.device_id}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"poll failed for {self._identity.device_id}: {exc}") from exc

        if response.status_code == 204:
            return None
        if response.status_code != 200:
            raise TransportError(f"http status {response.status_code} while polling {self._identity.device_id}")
        return _HttpsMessageAdapter(self, response)

    def complete(self, etag: str) -> None:
        if self._client is None:
            raise TransportError("https connection not open")
        if not etag:
            raise TransportError("received message has no etag; cannot complete")
        try:
            response = self._client.delete(
                f"{self._base_url}/{quote(etag, safe='')}",
                params={"api-version": API_VERSION},
                headers={**self._auth_headers(), "If-Match": f'"{etag}"'},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"complete failed for {self._identity.device_id}: {exc}") from exc

    def _stop_polling(self, join_timeout: float) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=join_timeout)

    def close(self) -> None:
        self._stop_polling(STOP_JOIN_TIMEOUT_SECONDS)
        self._close_client()

    def close_now(self) -> None:
        self._stop_polling(0.0)
        self._close_client()

    def _close_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                client.close()
            except Exception as exc:
                raise TransportError(f"https client close failed: {exc}") from exc
