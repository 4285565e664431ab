"""Reading blobs back through an ordered list of retrieval strategies."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import NamedTuple, TypeVar

from walrus_vault.application.dtos import (
    ExpectedMetadata,
    RetrievalCandidate,
    RetrievedBlob,
    StrategyResult,
)
from walrus_vault.application.services.error_classifier import (
    ClassifiedFailure,
    ErrorClass,
    FailureContext,
    classify,
    is_retryable,
    remediation_for,
    should_reprobe,
)
from walrus_vault.application.services.integrity import IntegrityCodec, sha256_hex
from walrus_vault.application.services.retry_policy import (
    SleepFn,
    backoff_delay,
    pause,
    raise_if_cancelled,
    run_until_cancelled,
)
from walrus_vault.commons.infrastructure.walrus import WalrusNetworkBase
from walrus_vault.commons.settings.models import RetrievalSettings
from walrus_vault.commons.telemetry import LogContext, get_logger, timed
from walrus_vault.domain.exceptions import (
    NotFoundError,
    OperationCancelledError,
    StorageUnavailableError,
)
from walrus_vault.domain.models import IDENTIFIER_KEY, BlobMetadata

T = TypeVar("T")

StrategyFn = Callable[[str, ExpectedMetadata], Awaitable[StrategyResult]]
ReprobeFn = Callable[[], Awaitable[object]]

SCORE_IDENTIFIER_MATCH = 100
SCORE_HASH_MATCH = 90
SCORE_VALIDATED = 50


class RetrievalStrategy(NamedTuple):
    """A named way of turning a content identifier into candidate bytes."""

    name: str
    fetch: StrategyFn


class RetrievalStrategyEngine:
    """Runs retrieval strategies in order and returns the first good payload.

    Every candidate is repaired and validated against its metadata. If no
    candidate validates, the first non-empty one comes back marked
    ``verified=False`` rather than failing the read. Reads never use the
    upload relay.
    """

    def __init__(
        self,
        network: WalrusNetworkBase,
        codec: IntegrityCodec,
        settings: RetrievalSettings | None = None,
        *,
        strategies: Sequence[RetrievalStrategy] | None = None,
        reprobe: ReprobeFn | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            network: Network client used for reads.
            codec: Repairs and validates candidates.
            settings: Retry counts, backoff and read deadline.
            strategies: Overrides the default strategy order.
            reprobe: Coroutine re-selecting the access point between
                outer retries.
            sleep: Awaitable sleep used for backoff.
        """
        self._network = network
        self._codec = codec
        self._settings = settings or RetrievalSettings()
        self._reprobe = reprobe
        self._sleep = sleep
        self._logger = get_logger(__name__)
        self.strategies: list[RetrievalStrategy] = list(
            strategies
            if strategies is not None
            else (
                RetrievalStrategy("container-files", self._container_files),
                RetrievalStrategy("raw-blob", self._raw_blob),
                RetrievalStrategy("file-by-id", self._file_by_id),
            )
        )

    # =========================================================================
    # Public API
    # =========================================================================

    @timed
    async def retrieve(
        self,
        content_id: str,
        expected: ExpectedMetadata | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedBlob:
        """Read ``content_id`` once through every strategy.

        Args:
            content_id: Content identifier returned by ``store``.
            expected: Identifier and/or hash used to pick the right file
                out of a multi-file container.
            cancel_event: Setting this aborts the read.

        Returns:
            The payload with its recovered metadata.

        Raises:
            NotFoundError: The network reports the content as absent.
            StorageUnavailableError: Every strategy failed transiently.
            OperationCancelledError: ``cancel_event`` was set.
        """
        expected = expected or ExpectedMetadata()
        with LogContext(new_operation=True, content_id=content_id):
            return await self._retrieve_once(content_id, expected, cancel_event)

    @timed
    async def retrieve_with_retry(
        self,
        content_id: str,
        expected: ExpectedMetadata | None = None,
        *,
        max_attempts: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RetrievedBlob:
        """``retrieve`` wrapped in an outer retry loop with backoff.

        Not-found and non-retryable failures short-circuit; transient
        failures back off ``min(base * 2**(n-1), cap)`` and re-probe the
        access point.
        """
        expected = expected or ExpectedMetadata()
        attempts = max_attempts or self._settings.max_attempts

        with LogContext(new_operation=True, content_id=content_id):
            for attempt in range(1, attempts + 1):
                try:
                    return await self._retrieve_once(content_id, expected, cancel_event)
                except StorageUnavailableError as e:
                    error_class = ErrorClass(e.last_error_class)
                    if not is_retryable(error_class):
                        raise
                    if attempt == attempts:
                        raise StorageUnavailableError(
                            "retrieve",
                            attempts,
                            e.last_error_class,
                            e.reason,
                            remediation=e.remediation,
                        ) from e
                    delay = backoff_delay(
                        attempt,
                        self._settings.backoff_base_seconds,
                        self._settings.backoff_cap_seconds,
                    )
                    self._logger.warning(
                        "Blob retrieval failed, retrying",
                        extra={
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "delay_seconds": delay,
                            "error_class": e.last_error_class,
                        },
                    )
                    await pause(
                        self._sleep,
                        delay,
                        cancel_event,
                        operation="retrieve",
                        attempt=attempt,
                    )
                    if self._reprobe is not None and should_reprobe(error_class):
                        await self._reprobe()

        # Unreachable: the loop either returns or raises
        raise AssertionError("retry loop exited without a result")

    @timed
    async def retrieve_many(self, content_ids: Sequence[str]) -> list[RetrievedBlob]:
        """Read several files by ID concurrently, preserving input order.

        Each buffer is repaired and validated with its own metadata.
        """
        if not content_ids:
            return []

        async def read_one(file_id: str) -> RetrievedBlob:
            try:
                fetched = await self._bounded(self._network.read_file(file_id))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise self._terminal_error(
                    file_id, classify(e, FailureContext("retrieval")), 1
                ) from e
            metadata = fetched.metadata()
            payload = self._codec.repair(fetched.contents, metadata, source="batch")
            return RetrievedBlob(
                content_id=file_id,
                payload=payload,
                metadata=metadata,
                strategy="file-by-id",
                verified=self._codec.validate(payload, metadata, source="batch"),
            )

        with LogContext(new_operation=True, batch_size=len(content_ids)):
            return list(await asyncio.gather(*(read_one(i) for i in content_ids)))

    def score(
        self,
        payload: bytes,
        metadata: BlobMetadata,
        expected: ExpectedMetadata,
    ) -> int:
        """How well a candidate matches what the caller asked for."""
        if expected.is_empty():
            repaired = self._codec.repair(payload, metadata)
            return SCORE_VALIDATED if self._codec.validate(repaired, metadata) else 0

        if expected.identifier and metadata.get(IDENTIFIER_KEY) == expected.identifier:
            return SCORE_IDENTIFIER_MATCH
        if expected.hash:
            wanted = expected.hash.lower()
            if wanted in (self._codec.stored_hash(metadata), sha256_hex(payload)):
                return SCORE_HASH_MATCH
        return 0

    # =========================================================================
    # Strategy loop
    # =========================================================================

    async def _retrieve_once(
        self,
        content_id: str,
        expected: ExpectedMetadata,
        cancel_event: asyncio.Event | None,
    ) -> RetrievedBlob:
        raise_if_cancelled(cancel_event, operation="retrieve", attempt=1)
        global_metadata = await self._global_metadata(content_id, cancel_event)
        fallback: RetrievalCandidate | None = None
        last_failure: ClassifiedFailure | None = None
        last_transient: ClassifiedFailure | None = None
        failures = 0

        for strategy in self.strategies:
            raise_if_cancelled(cancel_event, operation="retrieve", attempt=1)
            try:
                result = await run_until_cancelled(
                    strategy.fetch(content_id, expected),
                    cancel_event,
                    operation="retrieve",
                    attempt=1,
                )
            except (asyncio.CancelledError, OperationCancelledError):
                raise
            except Exception as e:
                failures += 1
                last_failure = classify(e, FailureContext("retrieval"))
                if not last_failure.not_found:
                    last_transient = last_failure
                self._logger.warning(
                    "Retrieval strategy failed",
                    extra={
                        "strategy": strategy.name,
                        "error_class": last_failure.error_class.value,
                        "error": last_failure.message,
                    },
                )
                continue

            for candidate in result.candidates:
                if not candidate.payload:
                    continue
                self._check_candidate(candidate, global_metadata)
                if fallback is None:
                    fallback = candidate
                if candidate.validated:
                    self._logger.info(
                        "Blob retrieved",
                        extra={
                            "strategy": strategy.name,
                            "size": len(candidate.payload),
                            "score": candidate.score,
                        },
                    )
                    return self._to_blob(content_id, candidate, verified=True)

        if fallback is not None:
            self._logger.warning(
                "No candidate passed validation; returning unverified bytes",
                extra={"strategy": fallback.strategy, "size": len(fallback.payload)},
            )
            return self._to_blob(content_id, fallback, verified=False)

        if last_failure is None:
            self._logger.error("No strategy produced any bytes")
            raise NotFoundError(content_id, "no retrieval strategy produced any bytes")
        # Not-found only when no strategy saw anything but not-found
        failure = last_transient or last_failure
        raise self._terminal_error(content_id, failure, failures)

    def _check_candidate(
        self, candidate: RetrievalCandidate, global_metadata: BlobMetadata
    ) -> None:
        candidate.metadata = {**candidate.metadata, **global_metadata}
        candidate.payload = self._codec.repair(
            candidate.payload, candidate.metadata, source=candidate.strategy
        )
        candidate.validated = self._codec.validate(
            candidate.payload, candidate.metadata, source=candidate.strategy
        )

    async def _global_metadata(
        self, content_id: str, cancel_event: asyncio.Event | None
    ) -> BlobMetadata:
        """Metadata recovered from the container itself, or empty."""
        try:
            return await run_until_cancelled(
                self._bounded(self._network.container_metadata(content_id)),
                cancel_event,
                operation="retrieve",
                attempt=1,
            )
        except (asyncio.CancelledError, OperationCancelledError):
            raise
        except Exception as e:
            # Strategies report the real failure if the blob is unreadable
            self._logger.debug(
                "Container metadata unavailable", extra={"error": repr(e)}
            )
            return {}

    def _terminal_error(
        self, content_id: str, failure: ClassifiedFailure, attempts: int
    ) -> NotFoundError | StorageUnavailableError:
        if failure.not_found:
            self._logger.info("Blob not found", extra={"error": failure.message})
            return NotFoundError(content_id, failure.message)
        self._logger.error(
            "Blob retrieval failed",
            extra={
                "error_class": failure.error_class.value,
                "error": failure.message,
            },
        )
        return StorageUnavailableError(
            "retrieve",
            attempts,
            failure.error_class.value,
            failure.message,
            remediation=remediation_for(failure.error_class),
        )

    @staticmethod
    def _to_blob(
        content_id: str, candidate: RetrievalCandidate, *, verified: bool
    ) -> RetrievedBlob:
        return RetrievedBlob(
            content_id=content_id,
            payload=candidate.payload,
            metadata=candidate.metadata,
            strategy=candidate.strategy,
            verified=verified,
        )

    async def _bounded(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self._settings.read_timeout_seconds)

    # =========================================================================
    # Strategies
    # =========================================================================

    async def _container_files(
        self, content_id: str, expected: ExpectedMetadata
    ) -> StrategyResult:
        """Read every file of the container and keep the best-scoring one."""
        entries = await self._bounded(self._network.list_container(content_id))
        best: RetrievalCandidate | None = None
        first: RetrievalCandidate | None = None

        for entry in entries:
            fetched = await self._bounded(self._network.read_file(entry.patch_id))
            metadata = {**entry.tags, **fetched.metadata()}
            if entry.identifier is not None and IDENTIFIER_KEY not in metadata:
                metadata[IDENTIFIER_KEY] = entry.identifier
            candidate = RetrievalCandidate(
                strategy="container-files",
                payload=fetched.contents,
                metadata=metadata,
                score=self.score(fetched.contents, metadata, expected),
            )
            if first is None:
                first = candidate
            if candidate.score > 0 and (best is None or candidate.score > best.score):
                best = candidate

        chosen = best or first
        self._logger.debug(
            "Container files scored",
            extra={
                "files": len(entries),
                "best_score": chosen.score if chosen else None,
                "identifier": chosen.metadata.get(IDENTIFIER_KEY) if chosen else None,
            },
        )
        return StrategyResult(candidates=[chosen] if chosen else [])

    async def _raw_blob(
        self, content_id: str, expected: ExpectedMetadata
    ) -> StrategyResult:
        payload = await self._bounded(self._network.read_blob(content_id))
        return StrategyResult(
            candidates=[RetrievalCandidate(strategy="raw-blob", payload=payload)]
        )

    async def _file_by_id(
        self, content_id: str, expected: ExpectedMetadata
    ) -> StrategyResult:
        fetched = await self._bounded(self._network.read_file(content_id))
        return StrategyResult(
            candidates=[
                RetrievalCandidate(
                    strategy="file-by-id",
                    payload=fetched.contents,
                    metadata=fetched.metadata(),
                )
            ]
        )
