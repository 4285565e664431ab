"""Telemetry helpers: call timing and scoped logging context."""

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar, overload

from walrus_vault.commons.telemetry.logger import (
    get_log_context,
    get_logger,
    get_operation_id,
    log_context_var,
    operation_id_var,
    set_operation_id,
)

P = ParamSpec("P")
R = TypeVar("R")


@overload
def timed(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]: ...


@overload
def timed(
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
    threshold_ms: float | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]: ...


def timed(
    func: Callable[P, Awaitable[R]] | None = None,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
    threshold_ms: float | None = None,
) -> (
    Callable[P, Awaitable[R]]
    | Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]
):
    """Decorator measuring and logging the duration of a coroutine.

    The outcome ("ok" or the exception type) is logged with the duration so
    slow failures and slow successes can be told apart.

    Args:
        func: The coroutine function to decorate (when used without parentheses).
        logger: Optional logger instance. Defaults to the function's module logger.
        level: Log level for timing messages.
        threshold_ms: Only log if execution exceeds this many milliseconds.

    Returns:
        Decorated coroutine function.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        log = logger or get_logger(fn.__module__)

        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            outcome = "ok"
            try:
                return await fn(*args, **kwargs)
            except BaseException as e:
                outcome = type(e).__name__
                raise
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                if threshold_ms is None or elapsed_ms >= threshold_ms:
                    log.log(
                        level,
                        f"{fn.__qualname__} completed",
                        extra={"duration_ms": round(elapsed_ms, 2), "outcome": outcome},
                    )

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


class LogContext:
    """Context manager adding temporary logging context.

    Optionally opens a fresh operation ID for the duration of the block
    (used once per public store/retrieve call). A nested block keeps the
    outer operation ID.
    """

    def __init__(self, *, new_operation: bool = False, **kwargs: Any) -> None:
        """Initialize with context values.

        Args:
            new_operation: Assign an operation ID if none is active.
            **kwargs: Key-value pairs to add to logging context.
        """
        self.context = kwargs
        self.new_operation = new_operation
        self._previous_context: dict[str, Any] = {}
        self._previous_operation: str | None = None

    def __enter__(self) -> "LogContext":
        """Enter the context, adding values to log context."""
        self._previous_context = get_log_context()
        self._previous_operation = get_operation_id()
        if self.new_operation and self._previous_operation is None:
            set_operation_id()
        log_context_var.set({**self._previous_context, **self.context})
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit the context, restoring previous values."""
        log_context_var.set(self._previous_context)
        operation_id_var.set(self._previous_operation)
