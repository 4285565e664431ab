"""Payload fingerprints: computing them at store time, checking them on read."""

import hashlib
from collections.abc import Mapping

from walrus_vault.commons.telemetry import get_logger, hex_preview
from walrus_vault.domain.models import (
    BOUNDARY_SAMPLE_BYTES,
    HASH_KEY,
    HEAD_KEY,
    LEGACY_HEAD_KEYS,
    LEGACY_TAIL_KEYS,
    SIZE_KEY,
    TAIL_KEY,
    BlobMetadata,
    stored_hash,
)


def sha256_hex(data: bytes) -> str:
    """Hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def _first_str(metadata: Mapping[str, object], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _hex_to_bytes(value: str | None) -> bytes | None:
    if not value:
        return None
    sanitized = value.removeprefix("0x")
    if not sanitized or len(sanitized) % 2:
        return None
    try:
        return bytes.fromhex(sanitized)
    except ValueError:
        return None


class IntegrityCodec:
    """Computes and checks payload fingerprints.

    A fingerprint is the full SHA-256 digest plus hex samples of the first and
    last 512 bytes. ``repair`` can restore those boundary bytes when a read
    path mangled them; it never invents bytes it did not record.
    """

    def __init__(self, *, repair_enabled: bool = True) -> None:
        """Initialize the codec.

        Args:
            repair_enabled: When False, ``repair`` returns candidates untouched
                and a boundary mismatch is left for ``validate`` to reject.
        """
        self.repair_enabled = repair_enabled
        self._logger = get_logger(__name__)

    def fingerprint(self, payload: bytes) -> BlobMetadata:
        """Fingerprint metadata for ``payload``; empty for an empty payload."""
        if not payload:
            return {}
        sample = min(BOUNDARY_SAMPLE_BYTES, len(payload))
        return {
            SIZE_KEY: str(len(payload)),
            HASH_KEY: sha256_hex(payload),
            HEAD_KEY: payload[:sample].hex(),
            TAIL_KEY: payload[-sample:].hex(),
        }

    @staticmethod
    def stored_hash(metadata: Mapping[str, object]) -> str | None:
        """The recorded payload digest, honouring legacy key names."""
        return stored_hash(metadata)

    def validate(
        self,
        candidate: bytes,
        metadata: Mapping[str, object],
        *,
        source: str = "",
    ) -> bool:
        """Check ``candidate`` against the recorded digest.

        Metadata without a digest is accepted as-is (legacy data). A mismatch
        is logged with diagnostics and reported as False, never raised.
        """
        expected = self.stored_hash(metadata)
        if expected is None:
            self._logger.debug(
                "Metadata carries no hash; accepting bytes unverified",
                extra={"source": source, "size": len(candidate)},
            )
            return True

        actual = sha256_hex(candidate)
        if actual != expected:
            self._logger.warning(
                "Blob hash mismatch",
                extra={
                    "source": source,
                    "expected_hash": expected,
                    "actual_hash": actual,
                    "size": len(candidate),
                    "expected_size": metadata.get(SIZE_KEY),
                    "head": hex_preview(candidate),
                    "tail": hex_preview(candidate[-16:]),
                },
            )
            return False
        return True

    def repair(
        self,
        candidate: bytes,
        metadata: Mapping[str, object],
        *,
        source: str = "",
    ) -> bytes:
        """Restore fingerprinted boundary bytes that differ in ``candidate``.

        Only ranges that fit inside the candidate are touched, so the length
        never changes. The tail is applied before the head; for payloads of
        512 bytes or fewer both samples cover the same range.
        """
        if not self.repair_enabled or not candidate:
            return candidate

        repaired = candidate
        tail = _hex_to_bytes(_first_str(metadata, (TAIL_KEY, *LEGACY_TAIL_KEYS)))
        if tail and len(tail) <= len(repaired):
            start = len(repaired) - len(tail)
            if repaired[start:] != tail:
                repaired = repaired[:start] + tail
                self._logger.debug(
                    "Blob tail bytes corrected",
                    extra={"source": source, "tail_length": len(tail)},
                )

        head = _hex_to_bytes(_first_str(metadata, (HEAD_KEY, *LEGACY_HEAD_KEYS)))
        if head and len(head) <= len(repaired):
            if repaired[: len(head)] != head:
                repaired = head + repaired[len(head) :]
                self._logger.debug(
                    "Blob head bytes corrected",
                    extra={"source": source, "head_length": len(head)},
                )

        return repaired
