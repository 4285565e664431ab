"""Shared fixtures: an in-memory Walrus network and a recording sleep."""

from dataclasses import dataclass

import pytest

from walrus_vault.commons.infrastructure.walrus import (
    ContainerEntry,
    FetchedFile,
    HealthStatus,
    WalrusFile,
    WalrusNetworkBase,
    WalrusRequestError,
    WriteResult,
)
from walrus_vault.commons.settings.models import (
    RetrievalSettings,
    Settings,
    UploadSettings,
)
from walrus_vault.domain.models import IDENTIFIER_KEY, StorageConfiguration


def not_found(url: str = "") -> WalrusRequestError:
    return WalrusRequestError("HTTP 404: not found", status_code=404, url=url)


@dataclass
class WriteCall:
    """One call to ``write_files`` as seen by the fake network."""

    configuration: StorageConfiguration
    use_relay: bool
    owner_address: str | None
    files: list[WalrusFile]


class FakeWalrusNetwork(WalrusNetworkBase):
    """In-memory stand-in for the publisher/aggregator API.

    Containers are kept as lists of files. Failures are injected through
    ``write_errors`` (consumed in order), ``relay_write_error`` (raised on
    every relay write) and ``read_errors`` (keyed by method name, raised on
    every call).
    """

    def __init__(
        self,
        *,
        has_relay: bool = True,
        aggregator: str = "https://aggregator.test",
    ) -> None:
        self._aggregator = aggregator
        self._has_relay = has_relay
        self.containers: dict[str, list[WalrusFile]] = {}
        self.raw_blobs: dict[str, bytes] = {}
        self.file_overrides: dict[str, bytes] = {}
        self.write_errors: list[BaseException] = []
        self.relay_write_error: BaseException | None = None
        self.read_errors: dict[str, BaseException] = {}
        self.writes: list[WriteCall] = []
        self.probe_latency: dict[str, float | BaseException] = {}
        self.probed: list[str] = []
        self.closed = False
        self._counter = 0

    # Fixture helpers

    def add_container(self, blob_id: str, files: list[WalrusFile]) -> list[str]:
        self.containers[blob_id] = list(files)
        return [self.patch_id(blob_id, i) for i in range(len(files))]

    @staticmethod
    def patch_id(blob_id: str, index: int) -> str:
        return f"{blob_id}-patch-{index}"

    def _fail(self, operation: str) -> None:
        if operation in self.read_errors:
            raise self.read_errors[operation]

    # WalrusNetworkBase

    @property
    def aggregator_url(self) -> str:
        return self._aggregator

    def set_aggregator(self, url: str) -> None:
        self._aggregator = url

    @property
    def has_relay(self) -> bool:
        return self._has_relay

    async def write_files(
        self,
        files: list[WalrusFile],
        configuration: StorageConfiguration,
        *,
        use_relay: bool,
        owner_address: str | None = None,
    ) -> WriteResult:
        self.writes.append(WriteCall(configuration, use_relay, owner_address, files))
        if use_relay and self.relay_write_error is not None:
            raise self.relay_write_error
        if self.write_errors:
            raise self.write_errors.pop(0)
        self._counter += 1
        blob_id = f"blob-{self._counter}"
        patch_ids = self.add_container(blob_id, files)
        return WriteResult(
            blob_id=blob_id,
            patch_ids={f.identifier: p for f, p in zip(files, patch_ids, strict=True)},
        )

    async def read_blob(self, blob_id: str) -> bytes:
        self._fail("read_blob")
        if blob_id in self.raw_blobs:
            return self.raw_blobs[blob_id]
        files = self.containers.get(blob_id)
        if files is None:
            raise not_found(blob_id)
        # A quilt read raw is its container encoding, not a file
        return b"QUILT" + b"".join(f.contents for f in files)

    async def list_container(self, blob_id: str) -> list[ContainerEntry]:
        self._fail("list_container")
        files = self.containers.get(blob_id)
        if files is None:
            raise not_found(blob_id)
        return [
            ContainerEntry(
                patch_id=self.patch_id(blob_id, i),
                identifier=f.identifier,
                tags=dict(f.tags),
            )
            for i, f in enumerate(files)
        ]

    async def read_file(self, file_id: str) -> FetchedFile:
        self._fail("read_file")
        blob_id, _, index = file_id.rpartition("-patch-")
        files = self.containers.get(blob_id) if blob_id else None
        if files is None or not index.isdigit() or int(index) >= len(files):
            raise not_found(file_id)
        file = files[int(index)]
        return FetchedFile(
            contents=self.file_overrides.get(file_id, file.contents),
            identifier=file.identifier,
            tags=dict(file.tags),
        )

    async def container_metadata(self, blob_id: str) -> dict[str, str]:
        self._fail("container_metadata")
        files = self.containers.get(blob_id)
        if files is None:
            raise not_found(blob_id)
        if len(files) != 1:
            return {}
        return {**files[0].tags, IDENTIFIER_KEY: files[0].identifier}

    async def probe(self, url: str, timeout: float) -> float:
        self.probed.append(url)
        latency = self.probe_latency.get(url, 10.0)
        if isinstance(latency, BaseException):
            raise latency
        return latency

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=1.0, message="ok")

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Fake ``asyncio.sleep`` that returns at once and records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_network():
    """In-memory Walrus network with an upload relay configured."""
    return FakeWalrusNetwork()


@pytest.fixture
def fake_sleep():
    """Recording sleep used in place of asyncio.sleep."""
    return RecordingSleep()


@pytest.fixture
def upload_settings():
    """Upload policy without the pause between configurations."""
    return UploadSettings(configuration_pause_seconds=0)


@pytest.fixture
def retrieval_settings():
    """Default read policy."""
    return RetrievalSettings()


@pytest.fixture
def settings(upload_settings, retrieval_settings):
    """Root settings built from the section fixtures."""
    return Settings(upload=upload_settings, retrieval=retrieval_settings)


@pytest.fixture
def make_network():
    """Factory for fake networks with non-default options."""
    return FakeWalrusNetwork
