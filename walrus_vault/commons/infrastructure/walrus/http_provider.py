"""Walrus network access over the publisher/aggregator HTTP API."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from walrus_vault.commons.infrastructure.walrus.base import (
    ContainerEntry,
    FetchedFile,
    HealthStatus,
    RelayTipConfig,
    WalrusFile,
    WalrusNetworkBase,
    WriteResult,
)
from walrus_vault.commons.settings.models import TransportSettings
from walrus_vault.commons.telemetry import get_logger
from walrus_vault.domain.models import (
    FINGERPRINT_KEYS,
    IDENTIFIER_KEY,
    LEGACY_HASH_KEYS,
    LEGACY_HEAD_KEYS,
    LEGACY_SIZE_KEYS,
    LEGACY_TAIL_KEYS,
    StorageConfiguration,
)

SleepFn = Callable[[float], Awaitable[None]]

PATCH_IDENTIFIER_HEADER = "x-quilt-patch-identifier"
# Header names arrive lower-cased; map them back to the tag keys
_TAG_HEADERS = {
    key.lower(): key
    for key in (
        *FINGERPRINT_KEYS,
        *LEGACY_HASH_KEYS,
        *LEGACY_HEAD_KEYS,
        *LEGACY_TAIL_KEYS,
        *LEGACY_SIZE_KEYS,
        IDENTIFIER_KEY,
    )
}


class WalrusRequestError(Exception):
    """Raised when a request to a Walrus access point fails.

    Attributes:
        status_code: HTTP status, or None for transport failures.
        url: Request URL (query string stripped).
        via_relay: Whether the request targeted the upload relay.
        transport_error: True when no HTTP response was received.
        protocol_error: True when a response arrived but could not be parsed.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
        via_relay: bool = False,
        transport_error: bool = False,
        protocol_error: bool = False,
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.via_relay = via_relay
        self.transport_error = transport_error
        self.protocol_error = protocol_error
        super().__init__(message)


class HttpWalrusNetwork(WalrusNetworkBase):
    """Walrus client speaking to a publisher, an aggregator and optionally an
    upload relay.

    Writes are multipart quilt uploads, so every stored payload keeps its
    identifier and tags. Each request is retried on 5xx responses and
    transport failures with exponential backoff; 4xx responses fail at once.
    """

    def __init__(
        self,
        aggregator_url: str,
        publisher_url: str,
        relay_url: str | None = None,
        relay_tip: RelayTipConfig | None = None,
        transport: TransportSettings | None = None,
        probe_path: str = "/v1/api",
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            aggregator_url: Base URL used for reads.
            publisher_url: Base URL used for direct writes.
            relay_url: Base URL of the upload relay, if any.
            relay_tip: Tip offered to the relay.
            transport: Per-request retry policy and timeouts.
            probe_path: Path requested when probing an access point.
            client: Optional preconfigured httpx client (tests inject one).
            sleep: Sleep function used between request retries.
        """
        self._aggregator = aggregator_url.rstrip("/")
        self._publisher = publisher_url.rstrip("/")
        self._relay = relay_url.rstrip("/") if relay_url else None
        self._relay_tip = relay_tip or RelayTipConfig()
        self._transport = transport or TransportSettings()
        self._probe_path = probe_path
        self._client = client or httpx.AsyncClient()
        self._sleep = sleep
        self._logger = get_logger(__name__)

    @property
    def aggregator_url(self) -> str:
        return self._aggregator

    def set_aggregator(self, url: str) -> None:
        url = url.rstrip("/")
        if url != self._aggregator:
            self._logger.info(
                "Switching Walrus aggregator",
                extra={"previous": self._aggregator, "current": url},
            )
        self._aggregator = url

    @property
    def has_relay(self) -> bool:
        return self._relay is not None

    # =========================================================================
    # Writes
    # =========================================================================

    async def write_files(
        self,
        files: list[WalrusFile],
        configuration: StorageConfiguration,
        *,
        use_relay: bool,
        owner_address: str | None = None,
    ) -> WriteResult:
        """Upload files as one quilt through the relay or the publisher."""
        if not files:
            raise ValueError("At least one file is required")

        via_relay = use_relay and self._relay is not None
        base = self._relay if via_relay else self._publisher
        params: dict[str, str] = {"epochs": str(configuration.epochs)}
        if configuration.deletable:
            params["deletable"] = "true"
        else:
            params["permanent"] = "true"
        if owner_address:
            params["send_object_to"] = owner_address
        if via_relay:
            params.update(self._relay_tip.to_query_params())

        metadata = [{"identifier": f.identifier, "tags": f.tags} for f in files]
        response = await self._request(
            "PUT",
            f"{base}/v1/quilts",
            is_read=False,
            via_relay=via_relay,
            params=params,
            data={"_metadata": json.dumps(metadata)},
            files=[
                (f.identifier, (f.identifier, f.contents, "application/octet-stream"))
                for f in files
            ],
        )
        return self._parse_write_response(response, via_relay=via_relay)

    def _parse_write_response(
        self, response: httpx.Response, *, via_relay: bool
    ) -> WriteResult:
        try:
            body = response.json()
            store = body.get("blobStoreResult", body)
            if "newlyCreated" in store:
                blob_id = store["newlyCreated"]["blobObject"]["blobId"]
                certified = False
            elif "alreadyCertified" in store:
                blob_id = store["alreadyCertified"]["blobId"]
                certified = True
            else:
                raise KeyError("newlyCreated/alreadyCertified")
            patch_ids = {
                p["identifier"]: p["quiltPatchId"]
                for p in body.get("storedQuiltBlobs", [])
            }
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WalrusRequestError(
                f"Unexpected store response: {response.text[:200]!r}",
                status_code=response.status_code,
                url=str(response.url).split("?", 1)[0],
                via_relay=via_relay,
                protocol_error=True,
            ) from e

        if not blob_id:
            raise WalrusRequestError(
                "Store response carried an empty blob ID",
                status_code=response.status_code,
                via_relay=via_relay,
                protocol_error=True,
            )
        return WriteResult(
            blob_id=blob_id, patch_ids=patch_ids, already_certified=certified
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def read_blob(self, blob_id: str) -> bytes:
        response = await self._request(
            "GET", f"{self._aggregator}/v1/blobs/{blob_id}", is_read=True
        )
        return response.content

    async def list_container(self, blob_id: str) -> list[ContainerEntry]:
        response = await self._request(
            "GET", f"{self._aggregator}/v1/quilts/{blob_id}/patches", is_read=True
        )
        try:
            entries = [
                ContainerEntry(
                    patch_id=item["patch_id"],
                    identifier=item.get("identifier"),
                    tags={k: str(v) for k, v in (item.get("tags") or {}).items()},
                )
                for item in response.json()
            ]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WalrusRequestError(
                f"Unexpected patch listing for {blob_id}: {response.text[:200]!r}",
                status_code=response.status_code,
                protocol_error=True,
            ) from e
        return entries

    async def read_file(self, file_id: str) -> FetchedFile:
        response = await self._request(
            "GET",
            f"{self._aggregator}/v1/blobs/by-quilt-patch-id/{file_id}",
            is_read=True,
        )
        # Patch tags travel back as response headers
        tags = {
            _TAG_HEADERS[name.lower()]: value
            for name, value in response.headers.items()
            if name.lower() in _TAG_HEADERS
        }
        return FetchedFile(
            contents=response.content,
            identifier=response.headers.get(PATCH_IDENTIFIER_HEADER)
            or tags.pop(IDENTIFIER_KEY, None),
            tags=tags,
        )

    async def container_metadata(self, blob_id: str) -> dict[str, str]:
        """Metadata of a single-file container; empty for multi-file ones."""
        entries = await self.list_container(blob_id)
        if len(entries) != 1:
            return {}
        entry = entries[0]
        metadata = dict(entry.tags)
        if entry.identifier is not None:
            metadata[IDENTIFIER_KEY] = entry.identifier
        return metadata

    # =========================================================================
    # Health
    # =========================================================================

    async def probe(self, url: str, timeout: float) -> float:
        start = time.perf_counter()
        response = await self._client.get(
            url.rstrip("/") + self._probe_path, timeout=httpx.Timeout(timeout)
        )
        response.raise_for_status()
        return (time.perf_counter() - start) * 1000

    async def health_check(self) -> HealthStatus:
        """Probe the aggregator and publisher."""
        start = time.perf_counter()
        details: dict[str, str] = {}
        healthy = True
        targets = (("aggregator", self._aggregator), ("publisher", self._publisher))
        for name, url in targets:
            try:
                latency = await self.probe(url, timeout=5.0)
                details[name] = f"ok ({latency:.0f} ms)"
            except (httpx.HTTPError, OSError) as e:
                healthy = False
                details[name] = f"unreachable: {e}"
        latency_ms = (time.perf_counter() - start) * 1000
        return HealthStatus(
            healthy=healthy,
            latency_ms=latency_ms,
            message="Walrus is healthy" if healthy else "Walrus health check failed",
            details=details,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Request plumbing
    # =========================================================================

    async def _request(
        self,
        method: str,
        url: str,
        *,
        is_read: bool,
        via_relay: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying 5xx responses, transport failures and
        request timeouts.
        """
        t = self._transport
        if is_read:
            retries = t.read_retries
            base, cap = t.read_backoff_base_seconds, t.read_backoff_cap_seconds
            timeout = t.read_request_timeout_seconds
        else:
            retries = t.write_retries
            base, cap = t.write_backoff_base_seconds, t.write_backoff_cap_seconds
            timeout = t.write_request_timeout_seconds

        for attempt in range(1, retries + 1):
            delay = min(base * 2 ** (attempt - 1), cap)
            try:
                # httpx timeouts cover single phases; wait_for bounds the whole request
                response = await asyncio.wait_for(
                    self._client.request(
                        method, url, timeout=httpx.Timeout(timeout), **kwargs
                    ),
                    timeout=timeout,
                )
            except (httpx.TransportError, TimeoutError) as e:
                if attempt == retries:
                    self._logger.warning(
                        "Walrus request failed after retries",
                        extra={"url": url[:80], "attempt": attempt, "error": repr(e)},
                    )
                    raise WalrusRequestError(
                        f"fetch failed: {type(e).__name__}: {e}",
                        url=url,
                        via_relay=via_relay,
                        transport_error=True,
                    ) from e
                self._logger.debug(
                    "Retrying Walrus request after transport error",
                    extra={"url": url[:80], "attempt": attempt, "delay": delay},
                )
                await self._sleep(delay)
                continue

            if response.is_success:
                return response

            if response.status_code < 500 or attempt == retries:
                raise WalrusRequestError(
                    self._error_text(response),
                    status_code=response.status_code,
                    url=url,
                    via_relay=via_relay,
                )

            self._logger.debug(
                "Retrying Walrus request after server error",
                extra={
                    "url": url[:80],
                    "attempt": attempt,
                    "status": response.status_code,
                    "delay": delay,
                },
            )
            await self._sleep(delay)

        raise AssertionError("unreachable")

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        """Best-effort error message from a Walrus error body."""
        text = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                text = str(error.get("message") or error)
            elif error:
                text = str(error)
        if response.status_code == 404 and "not found" not in text.lower():
            text = f"not found: {text}"
        return f"HTTP {response.status_code}: {text[:500]}"
