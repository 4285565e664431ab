"""Application layer - use cases and orchestration.

This layer contains:
- Services: store/retrieve orchestration, integrity and failure handling
- DTOs: Data transfer objects crossing the client boundary
"""

from walrus_vault.application.dtos import ExpectedMetadata, RetrievedBlob
from walrus_vault.application.services import (
    BlobStorageClient,
    IntegrityCodec,
    RetrievalStrategyEngine,
    UploadCoordinator,
)

__all__ = [
    # DTOs
    "ExpectedMetadata",
    "RetrievedBlob",
    # Services
    "BlobStorageClient",
    "IntegrityCodec",
    "RetrievalStrategyEngine",
    "UploadCoordinator",
]
