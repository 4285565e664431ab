"""Abstract interface to the Walrus storage network."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from walrus_vault.domain.models import IDENTIFIER_KEY, StorageConfiguration


@dataclass
class WalrusFile:
    """One logical file written into a container (quilt)."""

    contents: bytes
    identifier: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class WriteResult:
    """Outcome of a successful container write."""

    blob_id: str
    patch_ids: dict[str, str] = field(default_factory=dict)
    already_certified: bool = False


@dataclass
class ContainerEntry:
    """A file listed inside a stored container, before its bytes are read."""

    patch_id: str
    identifier: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class FetchedFile:
    """File bytes together with the metadata recovered alongside them."""

    contents: bytes
    identifier: str | None = None
    tags: dict[str, str] = field(default_factory=dict)

    def metadata(self) -> dict[str, str]:
        """Tags plus the identifier, the shape callers see as BlobMetadata."""
        merged = dict(self.tags)
        if self.identifier is not None:
            merged[IDENTIFIER_KEY] = self.identifier
        return merged


@dataclass
class RelayTipConfig:
    """Tip the upload relay is offered for accepting a write.

    ``max`` lets the relay pick its advertised tip up to ``max_tip`` MIST;
    ``const`` and ``linear`` pay a fixed or size-proportional tip to
    ``address``.
    """

    kind: Literal["max", "const", "linear"] = "max"
    address: str | None = None
    amount: int | None = None
    base: int | None = None
    per_encoded_kib: int | None = None
    max_tip: int | None = None

    def to_query_params(self) -> dict[str, str]:
        """Render the tip as relay query parameters."""
        params = {"tip_kind": self.kind}
        values = {
            "tip_address": self.address,
            "tip_amount": self.amount,
            "tip_base": self.base,
            "tip_per_kib": self.per_encoded_kib,
            "tip_max": self.max_tip,
        }
        params.update({k: str(v) for k, v in values.items() if v is not None})
        return params


@dataclass
class HealthStatus:
    """Health check result."""

    healthy: bool
    latency_ms: float
    message: str | None = None
    details: dict[str, str] | None = None


class WalrusNetworkBase(ABC):
    """Operations the blob client needs from the storage network.

    Implementations raise their own errors; the application layer
    classifies them. Reads never go through the upload relay.
    """

    @property
    @abstractmethod
    def aggregator_url(self) -> str:
        """Access point currently used for reads."""

    @abstractmethod
    def set_aggregator(self, url: str) -> None:
        """Re-home reads onto another access point.

        Args:
            url: Aggregator base URL.
        """

    @property
    @abstractmethod
    def has_relay(self) -> bool:
        """Whether an upload relay is configured at all."""

    @abstractmethod
    async def write_files(
        self,
        files: list[WalrusFile],
        configuration: StorageConfiguration,
        *,
        use_relay: bool,
        owner_address: str | None = None,
    ) -> WriteResult:
        """Write files as one container.

        Args:
            files: Files to bundle into the container.
            configuration: Storage duration and deletability.
            use_relay: Send the write through the upload relay.
            owner_address: Address receiving the blob object.

        Returns:
            The content identifier and per-file patch IDs.
        """

    @abstractmethod
    async def read_blob(self, blob_id: str) -> bytes:
        """Read the raw bytes of a stored blob.

        For a container this may be the container encoding, not a file.
        """

    @abstractmethod
    async def list_container(self, blob_id: str) -> list[ContainerEntry]:
        """List the files held in a container.

        Args:
            blob_id: Content identifier of the container.

        Returns:
            Container entries in stored order.
        """

    @abstractmethod
    async def read_file(self, file_id: str) -> FetchedFile:
        """Read a single file by its patch ID (or a blob ID the network
        resolves to a single file).
        """

    @abstractmethod
    async def container_metadata(self, blob_id: str) -> dict[str, str]:
        """Metadata describing the container as a whole, if recoverable.

        Returns an empty dict when nothing can be recovered.
        """

    @abstractmethod
    async def probe(self, url: str, timeout: float) -> float:
        """Measure round-trip latency to an access point.

        Returns:
            Latency in milliseconds.

        Raises:
            Exception: If the access point is unreachable or unhealthy.
        """

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check reachability of the configured access points."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release network resources."""
