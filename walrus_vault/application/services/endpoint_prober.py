"""Access-point selection by concurrent latency probing."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from walrus_vault.commons.telemetry import get_logger

ProbeFn = Callable[[str], Awaitable[float]]


class EndpointProber:
    """Picks the lowest-latency healthy access point from a candidate list."""

    def __init__(self, probe: ProbeFn, timeout: float = 5.0) -> None:
        """Initialize the prober.

        Args:
            probe: Coroutine returning latency in ms for a URL, raising on failure.
            timeout: Shared deadline for the whole probing round, in seconds.
        """
        self._probe = probe
        self._timeout = timeout
        self._logger = get_logger(__name__)

    async def select_best(
        self,
        candidates: Iterable[str],
        probe: ProbeFn | None = None,
    ) -> str | None:
        """Probe all candidates concurrently and return the fastest survivor.

        Probes still running when the deadline passes count as failures.

        Args:
            candidates: Ordered endpoint URLs; duplicates are ignored.
            probe: Optional probe overriding the one given at construction.

        Returns:
            The lowest-latency healthy URL, or None if every probe failed.
        """
        urls = list(dict.fromkeys(candidates))
        if not urls:
            return None
        probe_fn = probe or self._probe

        tasks = {asyncio.ensure_future(probe_fn(url)): url for url in urls}
        done, pending = await asyncio.wait(tasks, timeout=self._timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        healthy: list[tuple[float, int, str]] = []
        for task in done:
            url = tasks[task]
            error = task.exception()
            if error is not None:
                self._logger.debug(
                    "Endpoint probe failed", extra={"url": url, "error": repr(error)}
                )
                continue
            # Ties keep candidate order
            healthy.append((task.result(), urls.index(url), url))

        if not healthy:
            self._logger.error(
                "No healthy Walrus endpoints found",
                extra={"candidates": urls, "timed_out": [tasks[t] for t in pending]},
            )
            return None

        latency, _, best = min(healthy)
        self._logger.info(
            "Best Walrus endpoint selected",
            extra={
                "url": best,
                "latency_ms": round(latency, 1),
                "alternatives": len(healthy) - 1,
            },
        )
        return best
