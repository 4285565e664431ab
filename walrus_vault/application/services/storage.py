"""Blob storage client: the store/retrieve facade over the Walrus network."""

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from walrus_vault.application.dtos import ExpectedMetadata, RetrievedBlob
from walrus_vault.application.services.endpoint_prober import EndpointProber
from walrus_vault.application.services.integrity import IntegrityCodec
from walrus_vault.application.services.relay import RelayManager
from walrus_vault.application.services.retrieval import RetrievalStrategyEngine
from walrus_vault.application.services.retry_policy import SleepFn
from walrus_vault.application.services.upload import UploadCoordinator
from walrus_vault.commons.infrastructure.walrus import HealthStatus, WalrusNetworkBase
from walrus_vault.commons.settings.models import Settings
from walrus_vault.commons.telemetry import LogContext, get_logger, hex_preview
from walrus_vault.domain.exceptions import (
    NotFoundError,
    UnsupportedOperationError,
    WalrusVaultError,
)
from walrus_vault.domain.models import SignerContext


class BlobStorageClient:
    """Stores opaque payloads on Walrus and reads them back intact.

    Holds the only shared mutable state of the library: the selected
    aggregator and the relay degradation flag. The aggregator is chosen by
    latency probing on first use and re-chosen after node or network
    trouble.
    """

    def __init__(
        self,
        network: WalrusNetworkBase,
        settings: Settings | None = None,
        *,
        prober: EndpointProber | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            network: Network implementation used for every call.
            settings: Retry, probing and validation settings.
            prober: Endpoint prober; defaults to probing through ``network``.
            sleep: Awaitable sleep used for all backoff (tests pass a fake).
            clock: Wall clock in seconds.
        """
        self._settings = settings or Settings()
        self._network = network
        self._clock = clock
        self._logger = get_logger(__name__)

        walrus = self._settings.walrus
        self.codec = IntegrityCodec(
            repair_enabled=self._settings.retrieval.repair_enabled
        )
        self.relay = RelayManager(available=network.has_relay)
        self._prober = prober or EndpointProber(
            lambda url: network.probe(url, walrus.probe_timeout_seconds),
            timeout=walrus.probe_timeout_seconds,
        )
        self._endpoint: str | None = None
        self._endpoint_lock = asyncio.Lock()

        self._uploads = UploadCoordinator(
            network,
            self.codec,
            self.relay,
            self._settings.upload,
            reprobe=self.reprobe,
            sleep=sleep,
            clock=clock,
        )
        self._retrieval = RetrievalStrategyEngine(
            network,
            self.codec,
            self._settings.retrieval,
            reprobe=self.reprobe,
            sleep=sleep,
        )

    async def __aenter__(self) -> "BlobStorageClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    @property
    def endpoint(self) -> str | None:
        """Aggregator selected by probing, or None before first use."""
        return self._endpoint

    @property
    def relay_degraded(self) -> bool:
        return self.relay.relay_degraded

    # =========================================================================
    # Store / retrieve
    # =========================================================================

    async def store(
        self,
        payload: bytes,
        metadata: Mapping[str, Any] | None = None,
        *,
        signer: SignerContext | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Durably store ``payload`` and return its content identifier.

        See ``UploadCoordinator.store`` for retry behaviour and errors.
        """
        if signer is None and self._settings.walrus.owner_address:
            signer = SignerContext(owner_address=self._settings.walrus.owner_address)
        await self.ensure_endpoint()
        return await self._uploads.store(
            payload, metadata, signer=signer, cancel_event=cancel_event
        )

    async def retrieve(
        self,
        content_id: str,
        expected: ExpectedMetadata | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedBlob:
        """Read ``content_id`` back, validated against its stored hash.

        See ``RetrievalStrategyEngine.retrieve`` for strategies and errors.
        """
        self._require_content_id(content_id)
        await self.ensure_endpoint()
        return await self._retrieval.retrieve(
            content_id, expected, cancel_event=cancel_event
        )

    async def retrieve_with_retry(
        self,
        content_id: str,
        expected: ExpectedMetadata | None = None,
        *,
        max_attempts: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedBlob:
        """``retrieve`` with an outer retry loop for freshly stored blobs."""
        self._require_content_id(content_id)
        await self.ensure_endpoint()
        return await self._retrieval.retrieve_with_retry(
            content_id,
            expected,
            max_attempts=max_attempts,
            cancel_event=cancel_event,
        )

    async def retrieve_many(self, content_ids: Sequence[str]) -> list[RetrievedBlob]:
        """Read several files by ID; results keep the input order."""
        for content_id in content_ids:
            self._require_content_id(content_id)
        await self.ensure_endpoint()
        return await self._retrieval.retrieve_many(content_ids)

    async def verify_integrity(
        self,
        content_id: str,
        original: bytes,
        context: str | None = None,
    ) -> bool:
        """Read ``content_id`` back and compare it byte-for-byte to ``original``.

        On mismatch both buffers are written to the configured debug
        directory, if any. Never raises; failures are logged and reported
        as False.

        Args:
            content_id: Content identifier to read.
            original: Bytes that were stored.
            context: Free-form label added to the log records.

        Returns:
            True if the retrieved bytes equal ``original``.
        """
        with LogContext(content_id=content_id, verify_context=context or ""):
            try:
                retrieved = await self.retrieve(content_id)
            except WalrusVaultError as e:
                self._logger.error(
                    "Integrity check could not read blob",
                    extra={"error_class": e.error_class, "error": str(e)},
                )
                return False

            matches = retrieved.payload == original
            details = {
                "original_size": len(original),
                "retrieved_size": len(retrieved.payload),
                "original_head": hex_preview(original),
                "retrieved_head": hex_preview(retrieved.payload),
                "strategy": retrieved.strategy,
            }
            if matches:
                self._logger.info("Blob integrity verified", extra=details)
                return True

            self._logger.error("Blob integrity check failed", extra=details)
            self._dump_mismatch(content_id, original, retrieved.payload)
            return False

    # =========================================================================
    # Unsupported operations
    # =========================================================================

    async def delete(self, content_id: str) -> None:
        """Walrus blobs cannot be deleted through the HTTP API."""
        raise UnsupportedOperationError(
            "delete",
            "Blobs expire at the end of their storage epochs; "
            "stop referencing the content identifier instead.",
        )

    async def update_metadata(
        self, content_id: str, metadata: Mapping[str, Any]
    ) -> None:
        """Stored metadata is immutable."""
        raise UnsupportedOperationError(
            "metadata updates",
            "Store a new blob with the updated metadata and use its identifier.",
        )

    # =========================================================================
    # Endpoint and lifecycle
    # =========================================================================

    async def ensure_endpoint(self) -> str:
        """Select the aggregator on first use and cache it."""
        async with self._endpoint_lock:
            if self._endpoint is None:
                candidates = self._settings.walrus.aggregator_candidates()
                best = await self._prober.select_best(candidates)
                if best is None:
                    # Keep the configured aggregator; calls will classify failures
                    best = self._network.aggregator_url
                    self._logger.warning(
                        "Endpoint probing failed; using configured aggregator",
                        extra={"url": best},
                    )
                self._network.set_aggregator(best)
                self._endpoint = best
            return self._endpoint

    async def reprobe(self) -> str:
        """Forget the selected aggregator and probe again."""
        async with self._endpoint_lock:
            self._endpoint = None
        return await self.ensure_endpoint()

    def reset(self) -> None:
        """Clear the relay flag and the cached endpoint."""
        self.relay.reset()
        self._endpoint = None

    async def health_check(self) -> HealthStatus:
        return await self._network.health_check()

    async def aclose(self) -> None:
        await self._network.aclose()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require_content_id(content_id: str) -> None:
        if not content_id or not content_id.strip():
            raise NotFoundError(content_id, "empty content identifier")

    def _dump_mismatch(self, content_id: str, expected: bytes, actual: bytes) -> None:
        dump_dir = self._settings.retrieval.debug_dump_dir
        if not dump_dir:
            return
        stamp = int(self._clock() * 1000)
        directory = Path(dump_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            expected_path = directory / f"{content_id}-{stamp}-expected.bin"
            actual_path = directory / f"{content_id}-{stamp}-retrieved.bin"
            expected_path.write_bytes(expected)
            actual_path.write_bytes(actual)
        except OSError as e:
            self._logger.warning(
                "Could not write integrity debug files",
                extra={"directory": str(directory), "error": repr(e)},
            )
            return
        self._logger.info(
            "Integrity debug files written",
            extra={"expected": str(expected_path), "retrieved": str(actual_path)},
        )
