"""Data transfer objects for the application layer."""

from walrus_vault.application.dtos.storage import (
    ExpectedMetadata,
    RetrievalCandidate,
    RetrievedBlob,
    StrategyResult,
    UploadAttempt,
    UploadPath,
)

__all__ = [
    "ExpectedMetadata",
    "RetrievedBlob",
    "RetrievalCandidate",
    "StrategyResult",
    "UploadAttempt",
    "UploadPath",
]
