"""Walrus network abstractions and implementations."""

from walrus_vault.commons.infrastructure.walrus.base import (
    ContainerEntry,
    FetchedFile,
    HealthStatus,
    RelayTipConfig,
    WalrusFile,
    WalrusNetworkBase,
    WriteResult,
)
from walrus_vault.commons.infrastructure.walrus.http_provider import (
    HttpWalrusNetwork,
    WalrusRequestError,
)

__all__ = [
    # Base classes
    "WalrusNetworkBase",
    "WalrusFile",
    "WriteResult",
    "ContainerEntry",
    "FetchedFile",
    "RelayTipConfig",
    "HealthStatus",
    # Implementations
    "HttpWalrusNetwork",
    # Exceptions
    "WalrusRequestError",
]
