from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from harness.app.constants import TransportProtocol


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Service-side credential; builds both the registry and the remote sender.
    iothub_connection_string: str = Field(..., validation_alias="IOTHUB_CONNECTION_STRING")

    transport_backend: str = Field("iothub", validation_alias="TRANSPORT_BACKEND")
    protocols: str = Field("https,amqps,mqtt", validation_alias="PROTOCOLS")

    receive_timeout_ms: int = Field(60_000, validation_alias="RECEIVE_TIMEOUT_MS")
    poll_interval_ms: int = Field(100, validation_alias="POLL_INTERVAL_MS")
    grace_period_ms: int = Field(200, validation_alias="GRACE_PERIOD_MS")
    https_minimum_polling_interval_ms: int = Field(
        1000,
        validation_alias="HTTPS_MINIMUM_POLLING_INTERVAL_MS",
    )

    device_id_prefix: str = Field(
        "python-device-client-e2e-test",
        validation_alias="DEVICE_ID_PREFIX",
    )
    parallel_scenarios: bool = Field(False, validation_alias="PARALLEL_SCENARIOS")

    http_request_timeout_seconds: float = Field(30.0, validation_alias="HTTP_REQUEST_TIMEOUT_SECONDS")
    sas_token_ttl_seconds: int = Field(3600, validation_alias="SAS_TOKEN_TTL_SECONDS")
    inmemory_delivery_delay_ms: int = Field(50, validation_alias="INMEMORY_DELIVERY_DELAY_MS")

    def enabled_protocols(self) -> list[TransportProtocol]:
        """Parse PROTOCOLS (comma separated, case-insensitive) preserving order."""
        selected: list[TransportProtocol] = []
        for raw in self.protocols.split(","):
            name = raw.strip().upper()
            if not name:
                continue
            try:
                protocol = TransportProtocol(name)
            except ValueError:
                raise ValueError(f"Unsupported protocol: {raw.strip()}") from None
            if protocol not in selected:
                selected.append(protocol)
        return selected
