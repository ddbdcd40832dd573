import threading

import httpx
import pytest

from harness.app.constants import MINIMUM_POLLING_INTERVAL_OPTION
from harness.app.domain.errors import TransportError
from harness.app.infrastructure.iothub.https_connection import (
    API_VERSION,
    HttpsDeviceConnection,
    properties_from_headers,
)


def _connection(identity, handler) -> tuple[HttpsDeviceConnection, httpx.Client]:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpsDeviceConnection(identity, client=client), client


def _message_response(**headers) -> httpx.Response:
    base = {
        "etag": '"etag-1"',
        "iothub-app-name1": "value1",
        "iothub-app-name2": "value2",
        "iothub-messageid": "ignored",
    }
    base.update(headers)
    return httpx.Response(200, content=b"payload", headers=base)


def test_properties_from_headers_keeps_only_app_properties():
    raw = [
        (b"Content-Type", b"text/plain"),
        (b"iothub-app-Name1", b"value1"),
        (b"IoTHub-App-name2", b"value2"),
    ]
    assert properties_from_headers(raw) == {"Name1": "value1", "name2": "value2"}


def test_receive_once_returns_message_with_properties(identity):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _message_response()

    connection, _ = _connection(identity, handler)
    message = connection.receive_once()

    assert message is not None
    assert message.body == b"payload"
    assert message.properties == {"name1": "value1", "name2": "value2"}
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/devices/device-1/messages/deviceBound"
    assert request.url.params["api-version"] == API_VERSION
    assert request.headers["Authorization"].startswith("SharedAccessSignature sr=")


def test_receive_once_empty_queue(identity):
    connection, _ = _connection(identity, lambda request: httpx.Response(204))
    assert connection.receive_once() is None


def test_receive_once_maps_http_errors(identity):
    connection, _ = _connection(identity, lambda request: httpx.Response(500))
    with pytest.raises(TransportError, match="http status 500"):
        connection.receive_once()


def test_receive_once_maps_network_errors(identity):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    connection, _ = _connection(identity, handler)
    with pytest.raises(TransportError, match="poll failed"):
        connection.receive_once()


def test_ack_completes_with_if_match(identity):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return _message_response()
        return httpx.Response(204)

    connection, _ = _connection(identity, handler)
    connection.receive_once().ack()

    delete = seen[-1]
    assert delete.method == "DELETE"
    assert delete.url.path == "/devices/device-1/messages/deviceBound/etag-1"
    assert delete.headers["If-Match"] == '"etag-1"'


def test_ack_without_etag_fails(identity):
    connection, _ = _connection(identity, lambda request: _message_response(etag=""))
    message = connection.receive_once()
    with pytest.raises(TransportError, match="no etag"):
        message.ack()


def test_open_rejects_non_positive_interval(identity):
    connection, _ = _connection(identity, lambda request: httpx.Response(204))
    with pytest.raises(TransportError, match=MINIMUM_POLLING_INTERVAL_OPTION):
        connection.open({MINIMUM_POLLING_INTERVAL_OPTION: 0})


def test_poll_thread_delivers_once_handler_registered(identity):
    responses = iter([_message_response()])

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(204)
        return next(responses, httpx.Response(204))

    connection, _ = _connection(identity, handler)
    received = []
    arrived = threading.Event()

    def on_message(message) -> None:
        received.append(message)
        message.ack()
        arrived.set()

    connection.open({MINIMUM_POLLING_INTERVAL_OPTION: 10})
    try:
        connection.register_receive_callback(on_message)
        assert arrived.wait(2.0)
    finally:
        connection.close()

    assert len(received) == 1
    assert received[0].properties["name1"] == "value1"


def test_close_now_is_safe_before_open(identity):
    connection, _ = _connection(identity, lambda request: httpx.Response(204))
    connection.close_now()
    with pytest.raises(TransportError, match="not open"):
        connection.receive_once()
