"""Telemetry module - structured logging and timing."""

from walrus_vault.commons.telemetry.decorators import LogContext, timed
from walrus_vault.commons.telemetry.logger import (
    JsonFormatter,
    TextFormatter,
    clear_log_context,
    configure_logging,
    get_log_context,
    get_logger,
    get_operation_id,
    hex_preview,
    set_log_context,
    set_operation_id,
)

__all__ = [
    # Decorators
    "timed",
    "LogContext",
    # Logger
    "get_logger",
    "configure_logging",
    "JsonFormatter",
    "TextFormatter",
    "hex_preview",
    # Operation ID
    "get_operation_id",
    "set_operation_id",
    # Log Context
    "get_log_context",
    "set_log_context",
    "clear_log_context",
]
