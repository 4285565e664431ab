"""Pydantic settings models for the Walrus blob client."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WalrusNetwork = Literal["testnet", "devnet", "mainnet"]

# Public access points per network: aggregator (reads), publisher (writes),
# upload relay (write accelerator).
NETWORK_DEFAULTS: dict[str, dict[str, str]] = {
    "testnet": {
        "aggregator": "https://aggregator.walrus-testnet.walrus.space",
        "publisher": "https://publisher.walrus-testnet.walrus.space",
        "relay": "https://upload-relay.testnet.walrus.space",
    },
    "devnet": {
        "aggregator": "https://aggregator.walrus-devnet.walrus.space",
        "publisher": "https://publisher.walrus-devnet.walrus.space",
        "relay": "https://upload-relay.devnet.walrus.space",
    },
    "mainnet": {
        "aggregator": "https://aggregator.walrus-mainnet.walrus.space",
        "publisher": "https://publisher.walrus-mainnet.walrus.space",
        "relay": "https://upload-relay.mainnet.walrus.space",
    },
}

DEFAULT_RELAY_TIP_MAX = 5_000  # MIST


class AppSettings(BaseModel):
    """Application-level settings."""

    name: str = "walrus-vault"
    version: str = "0.1.0"
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class WalrusSettings(BaseModel):
    """Walrus network access points.

    Empty URLs resolve to the public defaults of the selected network.
    """

    network: WalrusNetwork = "testnet"
    aggregator_url: str = ""
    publisher_url: str = ""
    candidate_aggregators: list[str] = Field(default_factory=list)
    probe_path: str = "/v1/api"
    probe_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    owner_address: str | None = None

    def resolved_aggregator(self) -> str:
        """Aggregator URL, falling back to the network default."""
        url = self.aggregator_url or NETWORK_DEFAULTS[self.network]["aggregator"]
        return url.rstrip("/")

    def resolved_publisher(self) -> str:
        """Publisher URL, falling back to the network default."""
        url = self.publisher_url or NETWORK_DEFAULTS[self.network]["publisher"]
        return url.rstrip("/")

    def aggregator_candidates(self) -> list[str]:
        """Ordered, de-duplicated aggregator candidates for endpoint probing."""
        seen: dict[str, None] = {}
        for url in [self.resolved_aggregator(), *self.candidate_aggregators]:
            if url:
                seen.setdefault(url.rstrip("/"), None)
        return list(seen)


class RelaySettings(BaseModel):
    """Upload relay settings."""

    enabled: bool = True
    host: str = ""
    tip_kind: Literal["auto", "const", "linear"] = "auto"
    tip_address: str | None = None
    tip_amount: int | None = Field(default=None, ge=0)
    tip_base: int | None = Field(default=None, ge=0)
    tip_per_kib: int | None = Field(default=None, ge=0)
    tip_max: int | None = Field(default=None, ge=0)


class UploadSettings(BaseModel):
    """Store-path retry policy."""

    max_attempts: int = Field(default=5, ge=1, le=20)
    backoff_base_seconds: float = Field(default=3.0, ge=0)
    backoff_cap_seconds: float = Field(default=8.0, ge=0)
    configuration_pause_seconds: float = Field(default=1.0, ge=0)
    write_timeout_seconds: float = Field(default=60.0, gt=0)


class RetrievalSettings(BaseModel):
    """Read-path retry and validation policy."""

    max_attempts: int = Field(default=10, ge=1, le=50)
    backoff_base_seconds: float = Field(default=3.0, ge=0)
    backoff_cap_seconds: float = Field(default=30.0, ge=0)
    read_timeout_seconds: float = Field(default=120.0, gt=0)
    repair_enabled: bool = True
    debug_dump_dir: str | None = None


class TransportSettings(BaseModel):
    """Per-request retries inside the HTTP provider.

    Request timeouts bound a single HTTP request and must stay below the
    upload and retrieval deadlines, which bound a whole provider call
    including its retries.
    """

    read_retries: int = Field(default=8, ge=1)
    read_backoff_base_seconds: float = 3.0
    read_backoff_cap_seconds: float = 20.0
    write_retries: int = Field(default=5, ge=1)
    write_backoff_base_seconds: float = 2.0
    write_backoff_cap_seconds: float = 10.0
    read_request_timeout_seconds: float = Field(default=30.0, gt=0)
    write_request_timeout_seconds: float = Field(default=20.0, gt=0)


class TelemetrySettings(BaseModel):
    """Logging settings."""

    enabled: bool = True
    log_format: Literal["json", "text"] = "json"
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Root settings container with environment loading."""

    app: AppSettings = Field(default_factory=AppSettings)
    walrus: WalrusSettings = Field(default_factory=WalrusSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WALRUS_VAULT__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_timeouts(self) -> "Settings":
        """Ensure a single request times out before the call deadline."""
        t = self.transport
        read = (t.read_request_timeout_seconds, self.retrieval.read_timeout_seconds)
        write = (t.write_request_timeout_seconds, self.upload.write_timeout_seconds)
        for kind, (request_timeout, deadline) in (("read", read), ("write", write)):
            if request_timeout >= deadline:
                msg = (
                    f"transport.{kind}_request_timeout_seconds ({request_timeout}) "
                    f"must be below the {kind} deadline ({deadline})"
                )
                raise ValueError(msg)
        return self

    def resolved_relay_host(self) -> str | None:
        """Relay host, or None when the relay is disabled."""
        if not self.relay.enabled:
            return None
        host = self.relay.host.strip() or NETWORK_DEFAULTS[self.walrus.network]["relay"]
        return host.rstrip("/")
