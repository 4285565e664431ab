"""Domain exceptions for the Walrus blob client.

Every terminal error exposes ``error_class`` (a stable machine-readable
string) and ``remediation`` (human-readable guidance, or None).
"""

from __future__ import annotations

from typing import ClassVar

# 0.1 WAL, the minimum balance that reliably covers a small store
MIN_WAL_BALANCE_MIST = 100_000_000


class WalrusVaultError(Exception):
    """Base exception for blob client errors."""

    error_class: ClassVar[str] = "walrus-vault-error"

    def __init__(self, message: str, remediation: str | None = None) -> None:
        self.remediation = remediation
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.remediation:
            return f"{message}\n\n{self.remediation}"
        return message


class BalanceInsufficientError(WalrusVaultError):
    """Raised when the paying account cannot cover the storage cost."""

    error_class = "balance-insufficient"

    def __init__(self, reason: str, owner_address: str | None = None) -> None:
        self.reason = reason
        self.owner_address = owner_address
        self.required_mist = MIN_WAL_BALANCE_MIST
        lines = [
            "Walrus storage is paid in WAL tokens (not SUI).",
        ]
        if owner_address:
            lines.append(f"Paying address: {owner_address}")
        lines += [
            "To fix this:",
            "1. Fund the paying address with WAL from the Walrus faucet or exchange",
            f"2. Keep at least 0.1 WAL ({MIN_WAL_BALANCE_MIST:,} MIST) available",
            "3. Retry the upload once the balance is visible on chain",
        ]
        super().__init__(
            f"WAL token balance insufficient: {reason}",
            remediation="\n".join(lines),
        )


class StorageUnavailableError(WalrusVaultError):
    """Raised when every node, relay and retry has been exhausted.

    Terminal for this call; the caller may retry the whole operation later.
    """

    error_class = "storage-unavailable"

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error_class: str,
        reason: str,
        remediation: str | None = None,
    ) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error_class = last_error_class
        self.reason = reason
        super().__init__(
            f"Walrus {operation} failed after {attempts} attempts "
            f"(last failure: {last_error_class}): {reason}",
            remediation=remediation,
        )


class NotFoundError(WalrusVaultError):
    """Raised when the network confirms the content does not exist."""

    error_class = "not-found"

    def __init__(self, content_id: str, reason: str = "") -> None:
        self.content_id = content_id
        self.reason = reason
        super().__init__(
            f"Walrus blob {content_id} not found"
            + (f": {reason}" if reason else ""),
            remediation="It may have expired or never existed.",
        )


class FatalStoreError(WalrusVaultError):
    """Raised on malformed input or an unexpected protocol response."""

    error_class = "fatal"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to store blob in Walrus: {reason}")


class OperationCancelledError(WalrusVaultError):
    """Raised when the caller's cancellation token fires mid-operation."""

    error_class = "cancelled"

    def __init__(self, operation: str, attempt: int) -> None:
        self.operation = operation
        self.attempt = attempt
        super().__init__(f"Walrus {operation} cancelled before attempt {attempt}")


class UnsupportedOperationError(WalrusVaultError):
    """Raised for operations the network does not offer."""

    error_class = "unsupported"

    def __init__(self, operation: str, remediation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Walrus does not support {operation}", remediation=remediation
        )
