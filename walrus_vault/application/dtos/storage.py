"""DTOs for blob store and retrieve operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from walrus_vault.domain.models import BlobMetadata, StorageConfiguration, stored_hash

if TYPE_CHECKING:
    from walrus_vault.application.services.error_classifier import ClassifiedFailure


class UploadPath(str, Enum):
    """Route a write takes to the network."""

    RELAY = "relay"
    DIRECT = "direct"


class ExpectedMetadata(BaseModel):
    """What the caller knows about the payload it wants back.

    Used to pick the right file out of a multi-file container.
    """

    identifier: str | None = Field(
        default=None, description="Logical name given at store time"
    )
    hash: str | None = Field(
        default=None, description="Hex SHA-256 of the payload given at store time"
    )

    def is_empty(self) -> bool:
        return not (self.identifier or self.hash)


class RetrievedBlob(BaseModel):
    """A retrieved payload and the metadata recovered with it."""

    content_id: str = Field(description="Content identifier that was read")
    payload: bytes = Field(description="Payload bytes (ciphertext)")
    metadata: dict[str, str] = Field(default_factory=dict)
    strategy: str = Field(description="Retrieval strategy that produced the bytes")
    verified: bool = Field(
        description="False when returned as an unverified best-effort fallback"
    )

    @property
    def has_hash(self) -> bool:
        """Whether the metadata carried a digest the payload was checked against."""
        return stored_hash(self.metadata) is not None


@dataclass
class UploadAttempt:
    """One write try; lives only for the duration of a store call."""

    attempt: int
    configuration: StorageConfiguration
    path: UploadPath
    succeeded: bool = False
    content_id: str | None = None
    failure: ClassifiedFailure | None = None


@dataclass
class RetrievalCandidate:
    """Bytes produced by one retrieval strategy."""

    strategy: str
    payload: bytes
    metadata: BlobMetadata = field(default_factory=dict)
    score: int = 0
    validated: bool = False


@dataclass
class StrategyResult:
    """What a retrieval strategy hands back to the engine."""

    candidates: list[RetrievalCandidate] = field(default_factory=list)
