"""Failure classification for store and retrieve attempts.

``classify`` turns any exception raised while talking to the network into a
``ClassifiedFailure``; the retry loops only ever branch on its ``error_class``
through the decision functions at the bottom of this module.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Literal

import httpx

from walrus_vault.commons.infrastructure.walrus import WalrusRequestError


class ErrorClass(str, Enum):
    """Outcome classes for a failed network interaction."""

    TRANSIENT_NETWORK = "transient-network"
    TRANSIENT_NODE = "transient-node"
    BALANCE_INSUFFICIENT = "balance-insufficient"
    RELAY_FAULT = "relay-fault"
    FATAL = "fatal"


@dataclass(frozen=True)
class FailureContext:
    """Where a failure happened."""

    operation: Literal["upload", "retrieval"]
    attempt: int = 1
    via_relay: bool = False


@dataclass(frozen=True)
class ClassifiedFailure:
    """A failure together with its class."""

    error_class: ErrorClass
    message: str
    context: FailureContext
    not_found: bool = False

    @property
    def retryable(self) -> bool:
        return is_retryable(self.error_class)

    @property
    def should_reprobe(self) -> bool:
        return should_reprobe(self.error_class)


_BALANCE_MARKERS = ("insufficient balance", "insufficientcoinbalance")
_RELAY_MARKERS = ("tip payment", "transaction id", "nonce", "query parameters")
_NODE_MARKERS = (
    "too many failures",
    "not available for consumption",
    "not certified",
    "version mismatch",
    "epoch mismatch",
    "epoch change",
    "behind the current epoch",
)
_NETWORK_MARKERS = (
    "fetch failed",
    "econnrefused",
    "enotfound",
    "etimedout",
    "econnreset",
    "timed out",
    "timeout",
)
_NOT_FOUND_MARKERS = ("not found", "does not exist", "no such blob")


def _is_balance_error(text: str) -> bool:
    if "not enough coins" in text and "wal::wal" in text:
        return True
    return any(marker in text for marker in _BALANCE_MARKERS)


def _is_node_error(text: str) -> bool:
    if any(marker in text for marker in _NODE_MARKERS):
        return True
    return "while writing blob" in text and "to nodes" in text


def _is_transport_error(error: BaseException, text: str) -> bool:
    if isinstance(error, WalrusRequestError) and error.transport_error:
        return True
    # TimeoutError and ConnectionError are both OSError subclasses
    if isinstance(error, (httpx.TransportError, OSError)):
        return True
    return any(marker in text for marker in _NETWORK_MARKERS)


def classify(error: BaseException, context: FailureContext) -> ClassifiedFailure:
    """Assign ``error`` one of the five failure classes.

    Precedence: balance, relay (tip/nonce text, or any transport failure or
    5xx without node-failure text while the relay was in use), unparseable
    responses (fatal), node, network, fatal.

    Args:
        error: The raised exception.
        context: Operation, attempt number and relay usage.

    Returns:
        The classified failure.
    """
    message = str(error) or type(error).__name__
    text = message.lower()
    status = error.status_code if isinstance(error, WalrusRequestError) else None
    via_relay = context.via_relay or (
        isinstance(error, WalrusRequestError) and error.via_relay
    )

    def result(error_class: ErrorClass, not_found: bool = False) -> ClassifiedFailure:
        return ClassifiedFailure(error_class, message, context, not_found)

    if _is_balance_error(text):
        return result(ErrorClass.BALANCE_INSUFFICIENT)

    transport = _is_transport_error(error, text)
    if any(marker in text for marker in _RELAY_MARKERS) or (via_relay and transport):
        return result(ErrorClass.RELAY_FAULT)

    node_error = _is_node_error(text)
    # A relay 5xx without node-failure text is the relay's own fault
    if via_relay and status is not None and status >= 500 and not node_error:
        return result(ErrorClass.RELAY_FAULT)

    if isinstance(error, WalrusRequestError) and error.protocol_error:
        return result(ErrorClass.FATAL)

    if node_error or (status is not None and status >= 500):
        return result(ErrorClass.TRANSIENT_NODE)

    if transport:
        return result(ErrorClass.TRANSIENT_NETWORK)

    not_found = status == 404 or any(marker in text for marker in _NOT_FOUND_MARKERS)
    return result(ErrorClass.FATAL, not_found=not_found)


def is_retryable(error_class: ErrorClass) -> bool:
    """Whether another attempt may succeed."""
    return error_class in (
        ErrorClass.TRANSIENT_NETWORK,
        ErrorClass.TRANSIENT_NODE,
        ErrorClass.RELAY_FAULT,
    )


def should_reprobe(error_class: ErrorClass) -> bool:
    """Whether the failure suggests moving to another access point."""
    return error_class in (ErrorClass.TRANSIENT_NETWORK, ErrorClass.TRANSIENT_NODE)


def remediation_for(error_class: ErrorClass) -> str | None:
    """Operator guidance for a terminal failure of the given class."""
    if error_class is ErrorClass.TRANSIENT_NODE:
        return (
            "Multiple storage nodes failed during the attempts. This is usually "
            "temporary: wait a few minutes and retry, and check the Walrus "
            "network status if it persists."
        )
    if error_class is ErrorClass.TRANSIENT_NETWORK:
        return (
            "Could not reach the Walrus access points. Check network "
            "connectivity and the configured aggregator/publisher URLs."
        )
    if error_class is ErrorClass.RELAY_FAULT:
        return (
            "The upload relay rejected the request. Check the "
            "WALRUS_VAULT__RELAY__TIP_* settings or disable the relay."
        )
    return None
