"""Domain models."""

from walrus_vault.domain.models.blob import (
    BOUNDARY_SAMPLE_BYTES,
    FINGERPRINT_KEYS,
    HASH_KEY,
    HEAD_KEY,
    IDENTIFIER_KEY,
    LEGACY_HASH_KEYS,
    LEGACY_HEAD_KEYS,
    LEGACY_SIZE_KEYS,
    LEGACY_TAIL_KEYS,
    SIZE_KEY,
    TAIL_KEY,
    BlobMetadata,
    SignerContext,
    StorageConfiguration,
    stored_hash,
)

__all__ = [
    "BlobMetadata",
    "SignerContext",
    "StorageConfiguration",
    "stored_hash",
    "BOUNDARY_SAMPLE_BYTES",
    "FINGERPRINT_KEYS",
    "IDENTIFIER_KEY",
    "SIZE_KEY",
    "HASH_KEY",
    "HEAD_KEY",
    "TAIL_KEY",
    "LEGACY_HASH_KEYS",
    "LEGACY_HEAD_KEYS",
    "LEGACY_TAIL_KEYS",
    "LEGACY_SIZE_KEYS",
]
