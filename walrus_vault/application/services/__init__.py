"""Application services for storing and retrieving blobs."""

from walrus_vault.application.services.endpoint_prober import EndpointProber
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
from walrus_vault.application.services.relay import RelayManager, build_tip_config
from walrus_vault.application.services.retrieval import (
    RetrievalStrategy,
    RetrievalStrategyEngine,
)
from walrus_vault.application.services.retry_policy import backoff_delay
from walrus_vault.application.services.storage import BlobStorageClient
from walrus_vault.application.services.upload import (
    UploadCoordinator,
    configuration_schedule,
    normalize_metadata,
)

__all__ = [
    "BlobStorageClient",
    "ClassifiedFailure",
    "EndpointProber",
    "ErrorClass",
    "FailureContext",
    "IntegrityCodec",
    "RelayManager",
    "RetrievalStrategy",
    "RetrievalStrategyEngine",
    "UploadCoordinator",
    "backoff_delay",
    "build_tip_config",
    "classify",
    "configuration_schedule",
    "is_retryable",
    "normalize_metadata",
    "remediation_for",
    "sha256_hex",
    "should_reprobe",
]
