"""Blob metadata vocabulary and storage configuration value objects."""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

# Metadata keys written at store time
IDENTIFIER_KEY = "identifier"
SIZE_KEY = "size-bytes"
HASH_KEY = "hash-sha256"
HEAD_KEY = "head-hex"
TAIL_KEY = "tail-hex"

FINGERPRINT_KEYS = (SIZE_KEY, HASH_KEY, HEAD_KEY, TAIL_KEY)

# Older capsules were tagged with these names; readers still honour them
LEGACY_HASH_KEYS = ("walrus_hash_sha256", "encryptedHash")
LEGACY_HEAD_KEYS = ("walrus_head_hex",)
LEGACY_TAIL_KEYS = ("walrus_tail_hex",)
LEGACY_SIZE_KEYS = ("walrus_size_bytes",)

# Bytes sampled from each end of a payload
BOUNDARY_SAMPLE_BYTES = 512

# Shorter values are labels, not digests
MIN_HASH_LENGTH = 16

BlobMetadata = dict[str, str]


def stored_hash(metadata: Mapping[str, object]) -> str | None:
    """The recorded payload digest, honouring legacy key names."""
    for key in (HASH_KEY, *LEGACY_HASH_KEYS):
        value = metadata.get(key)
        if isinstance(value, str) and len(value.strip()) >= MIN_HASH_LENGTH:
            return value.strip().lower()
    return None


class StorageConfiguration(BaseModel):
    """How long a blob is kept and whether it may be deleted early."""

    model_config = ConfigDict(frozen=True)

    epochs: int = Field(ge=1, description="Number of storage epochs to pay for")
    deletable: bool = Field(description="Whether the blob may be deleted early")

    def __str__(self) -> str:
        return f"epochs={self.epochs}, deletable={self.deletable}"


class SignerContext(BaseModel):
    """Who ends up owning the stored blob object.

    The publisher pays for storage; ``owner_address`` receives the blob
    object afterwards.
    """

    model_config = ConfigDict(frozen=True)

    owner_address: str | None = Field(
        default=None, description="Sui address receiving the blob object"
    )
