"""IoT Hub connection string parsing and shared access signature tokens."""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from urllib.parse import quote

HOST_NAME = "HostName"
SHARED_ACCESS_KEY = "SharedAccessKey"


@dataclass(frozen=True)
class ConnectionStringParts:
    host_name: str
    shared_access_key: str


@dataclass(frozen=True)
class SasToken:
    token: str
    expires_at: int


def parse_connection_string(connection_string: str) -> ConnectionStringParts:
    """Split `Key=Value;Key=Value` pairs. Values may contain '=' (base64 keys)."""
    values: dict[str, str] = {}
    for segment in connection_string.strip().split(";"):
        if not segment.strip():
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"malformed connection string segment: {segment!r}")
        values[key.strip()] = value.strip()

    host_name = values.get(HOST_NAME)
    key = values.get(SHARED_ACCESS_KEY)
    if not host_name:
        raise ValueError("connection string missing required field: HostName")
    if not key:
        raise ValueError("connection string missing required field: SharedAccessKey")
    return ConnectionStringParts(host_name=host_name, shared_access_key=key)


def generate_sas_token(
    uri: str,
    key: str,
    *,
    ttl_seconds: int = 3600,
    now: float | None = None,
) -> SasToken:
    """HMAC-SHA256 signature over `<url-encoded uri>\\n<expiry>` with the base64-decoded key."""
    expires_at = int((time.time() if now is None else now) + ttl_seconds)
    encoded_uri = quote(uri, safe="")
    to_sign = f"{encoded_uri}\n{expires_at}".encode("utf-8")
    digest = hmac.new(base64.b64decode(key), to_sign, hashlib.sha256).digest()
    signature = quote(base64.b64encode(digest).decode("utf-8"), safe="")

    token = f"SharedAccessSignature sr={encoded_uri}&sig={signature}&se={expires_at}"
    return SasToken(token=token, expires_at=expires_at)
