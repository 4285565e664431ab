"""Domain layer - blob vocabulary and error taxonomy."""

from walrus_vault.domain.exceptions import (
    BalanceInsufficientError,
    FatalStoreError,
    NotFoundError,
    OperationCancelledError,
    StorageUnavailableError,
    UnsupportedOperationError,
    WalrusVaultError,
)
from walrus_vault.domain.models import (
    BlobMetadata,
    SignerContext,
    StorageConfiguration,
)

__all__ = [
    # Exceptions
    "WalrusVaultError",
    "BalanceInsufficientError",
    "StorageUnavailableError",
    "NotFoundError",
    "FatalStoreError",
    "OperationCancelledError",
    "UnsupportedOperationError",
    # Models
    "BlobMetadata",
    "SignerContext",
    "StorageConfiguration",
]
