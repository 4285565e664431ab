"""Backoff arithmetic and cancellation-aware waiting shared by store and retrieve."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from walrus_vault.domain.exceptions import OperationCancelledError

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """``min(base * 2**(attempt - 1), cap)`` for a 1-based attempt number."""
    return min(base * 2 ** (attempt - 1), cap)


def raise_if_cancelled(
    cancel_event: asyncio.Event | None, *, operation: str, attempt: int
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(operation, attempt)


async def run_until_cancelled(
    aw: Awaitable[T],
    cancel_event: asyncio.Event | None,
    *,
    operation: str,
    attempt: int,
) -> T:
    """Await ``aw`` unless ``cancel_event`` fires first.

    Raises:
        OperationCancelledError: If the event was set before ``aw`` finished.
            The in-flight work is cancelled.
    """
    if cancel_event is None:
        return await aw

    if cancel_event.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise OperationCancelledError(operation, attempt)

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if not task.done():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError(operation, attempt)
    return task.result()


async def pause(
    sleep: SleepFn,
    delay: float,
    cancel_event: asyncio.Event | None,
    *,
    operation: str,
    attempt: int,
) -> None:
    """Sleep for ``delay`` seconds, aborting early on cancellation."""
    if delay <= 0:
        raise_if_cancelled(cancel_event, operation=operation, attempt=attempt)
        return
    await run_until_cancelled(
        sleep(delay), cancel_event, operation=operation, attempt=attempt
    )
