"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field

from harness.app.constants import ScenarioResult, TransportProtocol
from harness.app.domain.errors import (
    ContentMismatchError,
    ReceiveTimeoutError,
    TransportError,
)


@dataclass(frozen=True)
class Message:
    """Opaque payload plus ordered (name, value) custom properties."""

    body: bytes
    properties: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.body, bytes):
            raise TypeError("message.body must be bytes")
        for pair in self.properties:
            if len(pair) != 2 or not all(isinstance(part, str) for part in pair):
                raise TypeError("message.properties must be (str, str) pairs")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def properties_dict(self) -> dict[str, str]:
        return dict(self.properties)


@dataclass(frozen=True)
class PropertyComparisonResult:
    """Outcome of comparing received properties against the sent set."""

    matched: bool
    mismatched_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeviceIdentity:
    """A provisioned device and the symmetric key it authenticates with."""

    device_id: str
    host_name: str
    primary_key: str

    @property
    def connection_string(self) -> str:
        return (
            f"HostName={self.host_name};"
            f"DeviceId={self.device_id};"
            f"SharedAccessKey={self.primary_key}"
        )


_FAILURES: dict[ScenarioResult, tuple[type[Exception], str]] = {
    ScenarioResult.TIMEOUT: (ReceiveTimeoutError, "receive timed out"),
    ScenarioResult.CONTENT_MISMATCH: (ContentMismatchError, "content verification failed"),
    ScenarioResult.TRANSPORT_ERROR: (TransportError, "transport failure"),
}


@dataclass(frozen=True)
class ScenarioReport:
    """Result of one send-and-verify cycle (value object)."""

    protocol: TransportProtocol
    device_id: str
    result: ScenarioResult
    error: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.result == ScenarioResult.SUCCESS

    def raise_for_result(self) -> None:
        """Raise the taxonomy error matching a failed result; no-op on SUCCESS."""
        if self.succeeded:
            return
        error_cls, summary = _FAILURES[self.result]
        detail = f"{self.protocol.value}: {summary}"
        if self.error:
            detail = f"{detail} ({self.error})"
        raise error_cls(detail)


@dataclass(frozen=True)
class SuiteReport:
    """All scenario reports from one suite run, in protocol order."""

    reports: tuple[ScenarioReport, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return bool(self.reports) and all(r.succeeded for r in self.reports)

    @property
    def failed(self) -> tuple[ScenarioReport, ...]:
        return tuple(r for r in self.reports if not r.succeeded)
