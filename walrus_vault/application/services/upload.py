"""Durable writes: storage configuration schedule, relay fallback and backoff."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from walrus_vault.application.dtos import UploadAttempt, UploadPath
from walrus_vault.application.services.error_classifier import (
    ClassifiedFailure,
    ErrorClass,
    FailureContext,
    classify,
    remediation_for,
)
from walrus_vault.application.services.integrity import IntegrityCodec
from walrus_vault.application.services.relay import RelayManager
from walrus_vault.application.services.retry_policy import (
    SleepFn,
    backoff_delay,
    pause,
    raise_if_cancelled,
    run_until_cancelled,
)
from walrus_vault.commons.infrastructure.walrus import WalrusFile, WalrusNetworkBase
from walrus_vault.commons.settings.models import UploadSettings
from walrus_vault.commons.telemetry import LogContext, get_logger, timed
from walrus_vault.domain.exceptions import (
    BalanceInsufficientError,
    FatalStoreError,
    OperationCancelledError,
    StorageUnavailableError,
)
from walrus_vault.domain.models import (
    IDENTIFIER_KEY,
    BlobMetadata,
    SignerContext,
    StorageConfiguration,
)

ReprobeFn = Callable[[], Awaitable[object]]

_SHORT_DELETABLE = StorageConfiguration(epochs=1, deletable=True)
_SHORT_PERMANENT = StorageConfiguration(epochs=1, deletable=False)


def configuration_schedule(attempt: int) -> list[StorageConfiguration]:
    """Storage configurations to try, in order, on a 1-based attempt.

    Later attempts widen the set so that a node set refusing one epoch
    count or deletability mode can still accept another.
    """
    if attempt <= 2:
        return [_SHORT_DELETABLE]
    if attempt == 3:
        return [StorageConfiguration(epochs=2, deletable=True), _SHORT_PERMANENT]
    return [
        StorageConfiguration(epochs=3, deletable=True),
        _SHORT_DELETABLE,
        _SHORT_PERMANENT,
    ]


def normalize_metadata(metadata: Mapping[str, Any] | None) -> BlobMetadata:
    """Drop None values and JSON-encode anything that is not a string."""
    normalized: BlobMetadata = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        normalized[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return normalized


class UploadCoordinator:
    """Writes one payload to Walrus, retrying until it is durably stored.

    Each attempt walks the configuration schedule. Writes go through the
    upload relay while it is healthy and straight to the publisher
    otherwise. Balance and fatal failures end the call at once; node and
    network failures back off and may re-home the client.
    """

    def __init__(
        self,
        network: WalrusNetworkBase,
        codec: IntegrityCodec,
        relay: RelayManager,
        settings: UploadSettings | None = None,
        *,
        reprobe: ReprobeFn | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            network: Network client used for writes.
            codec: Computes the fingerprint stored with each payload.
            relay: Relay availability state, shared with the owning client.
            settings: Attempt count, backoff and write deadline.
            reprobe: Coroutine re-selecting the access point after
                node or network trouble.
            sleep: Awaitable sleep used for backoff and pauses.
            clock: Wall clock in seconds, used for default identifiers.
        """
        self._network = network
        self._codec = codec
        self._relay = relay
        self._settings = settings or UploadSettings()
        self._reprobe = reprobe
        self._sleep = sleep
        self._clock = clock
        self._logger = get_logger(__name__)

    def prepare_metadata(
        self, payload: bytes, metadata: Mapping[str, Any] | None = None
    ) -> BlobMetadata:
        """Caller metadata merged over the payload fingerprint.

        Caller-supplied keys win. An identifier is always present.
        """
        merged = {**self._codec.fingerprint(payload), **normalize_metadata(metadata)}
        if not merged.get(IDENTIFIER_KEY):
            merged[IDENTIFIER_KEY] = f"blob_{int(self._clock() * 1000)}"
        return merged

    @timed
    async def store(
        self,
        payload: bytes,
        metadata: Mapping[str, Any] | None = None,
        *,
        signer: SignerContext | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Store ``payload`` and return its content identifier.

        Args:
            payload: Opaque bytes, typically ciphertext.
            metadata: Caller metadata; values are stringified.
            signer: Who receives the stored blob object.
            cancel_event: Setting this aborts the whole retry loop.

        Returns:
            The content identifier of the stored container.

        Raises:
            BalanceInsufficientError: The paying account cannot cover storage.
            FatalStoreError: Malformed input or protocol response.
            StorageUnavailableError: Every attempt failed transiently.
            OperationCancelledError: ``cancel_event`` was set.
        """
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            kind = type(payload).__name__
            raise FatalStoreError(f"payload must be bytes, got {kind}")
        payload = bytes(payload)
        if not payload:
            raise FatalStoreError("payload is empty")

        blob_metadata = self.prepare_metadata(payload, metadata)
        identifier = blob_metadata[IDENTIFIER_KEY]
        file = WalrusFile(
            contents=payload,
            identifier=identifier,
            tags={k: v for k, v in blob_metadata.items() if k != IDENTIFIER_KEY},
        )
        owner_address = signer.owner_address if signer else None

        with LogContext(new_operation=True, identifier=identifier):
            self._logger.info(
                "Storing blob",
                extra={"size": len(payload), "tags": len(file.tags)},
            )
            return await self._store_with_retry(file, owner_address, cancel_event)

    async def _store_with_retry(
        self,
        file: WalrusFile,
        owner_address: str | None,
        cancel_event: asyncio.Event | None,
    ) -> str:
        max_attempts = self._settings.max_attempts
        attempts: list[UploadAttempt] = []
        last_failure: ClassifiedFailure | None = None

        for attempt in range(1, max_attempts + 1):
            for index, configuration in enumerate(configuration_schedule(attempt)):
                if index:
                    await pause(
                        self._sleep,
                        self._settings.configuration_pause_seconds,
                        cancel_event,
                        operation="store",
                        attempt=attempt,
                    )
                record = await self._try_configuration(
                    file, configuration, attempt, owner_address, cancel_event
                )
                attempts.extend(record)
                if record[-1].succeeded:
                    return record[-1].content_id
                last_failure = record[-1].failure

            if attempt == max_attempts:
                break

            delay = backoff_delay(
                attempt,
                self._settings.backoff_base_seconds,
                self._settings.backoff_cap_seconds,
            )
            self._logger.info(
                "Upload attempt failed, backing off",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                    "error_class": last_failure.error_class.value,
                },
            )
            await pause(
                self._sleep, delay, cancel_event, operation="store", attempt=attempt
            )
            if last_failure.should_reprobe and self._reprobe is not None:
                await self._reprobe()

        error_class = last_failure.error_class
        self._logger.error(
            "Blob upload failed after all attempts",
            extra={
                "attempts": max_attempts,
                "tries": len(attempts),
                "error_class": error_class.value,
                "error": last_failure.message,
            },
        )
        raise StorageUnavailableError(
            "store",
            max_attempts,
            error_class.value,
            last_failure.message,
            remediation=remediation_for(error_class),
        )

    async def _try_configuration(
        self,
        file: WalrusFile,
        configuration: StorageConfiguration,
        attempt: int,
        owner_address: str | None,
        cancel_event: asyncio.Event | None,
    ) -> list[UploadAttempt]:
        """Write once with ``configuration``.

        A relay fault is retried on the direct path straight away, so this
        returns one or two records; the last one decides the outcome.
        """
        records: list[UploadAttempt] = []
        while True:
            raise_if_cancelled(cancel_event, operation="store", attempt=attempt)
            use_relay = self._relay.should_use_relay()
            path = UploadPath.RELAY if use_relay else UploadPath.DIRECT
            record = UploadAttempt(
                attempt=attempt, configuration=configuration, path=path
            )
            records.append(record)

            try:
                result = await run_until_cancelled(
                    asyncio.wait_for(
                        self._network.write_files(
                            [file],
                            configuration,
                            use_relay=path is UploadPath.RELAY,
                            owner_address=owner_address,
                        ),
                        timeout=self._settings.write_timeout_seconds,
                    ),
                    cancel_event,
                    operation="store",
                    attempt=attempt,
                )
            except (asyncio.CancelledError, OperationCancelledError):
                raise
            except Exception as e:
                failure = classify(
                    e,
                    FailureContext(
                        "upload", attempt=attempt, via_relay=path is UploadPath.RELAY
                    ),
                )
                record.failure = failure
                self._handle_failure(failure, configuration, path, owner_address, e)
                if failure.error_class is ErrorClass.RELAY_FAULT:
                    self._relay.report_fault()
                    if path is UploadPath.RELAY:
                        continue
                return records

            record.succeeded = True
            record.content_id = result.blob_id
            if path is UploadPath.RELAY:
                self._relay.report_success()
            self._logger.info(
                "Blob stored",
                extra={
                    "content_id": result.blob_id,
                    "attempt": attempt,
                    "configuration": str(configuration),
                    "path": path.value,
                    "already_certified": result.already_certified,
                },
            )
            return records

    def _handle_failure(
        self,
        failure: ClassifiedFailure,
        configuration: StorageConfiguration,
        path: UploadPath,
        owner_address: str | None,
        error: Exception,
    ) -> None:
        """Log the failure and raise if it ends the whole store call."""
        if failure.error_class is ErrorClass.BALANCE_INSUFFICIENT:
            self._logger.error(
                "Upload rejected: WAL balance insufficient",
                extra={"owner_address": owner_address, "error": failure.message},
            )
            raise BalanceInsufficientError(failure.message, owner_address) from error

        if failure.error_class is ErrorClass.FATAL:
            self._logger.error(
                "Upload failed with a non-retryable error",
                extra={"error": failure.message, "path": path.value},
            )
            raise FatalStoreError(failure.message) from error

        self._logger.warning(
            "Upload try failed",
            extra={
                "attempt": failure.context.attempt,
                "configuration": str(configuration),
                "path": path.value,
                "error_class": failure.error_class.value,
                "error": failure.message,
            },
        )
