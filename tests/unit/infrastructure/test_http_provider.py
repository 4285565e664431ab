"""Unit tests for the HTTP Walrus network client."""

import asyncio
import json

import httpx
import pytest

from walrus_vault.commons.infrastructure.walrus import (
    HttpWalrusNetwork,
    RelayTipConfig,
    WalrusFile,
    WalrusRequestError,
)
from walrus_vault.commons.settings.models import TransportSettings
from walrus_vault.domain.models import StorageConfiguration

AGGREGATOR = "https://aggregator.test"
PUBLISHER = "https://publisher.test"
RELAY = "https://relay.test"

DELETABLE = StorageConfiguration(epochs=2, deletable=True)
PERMANENT = StorageConfiguration(epochs=1, deletable=False)


class Router:
    """Canned responses for httpx.MockTransport, recording every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # The last response repeats
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def newly_created(blob_id="quilt-1", patches=None):
    return httpx.Response(
        200,
        json={
            "blobStoreResult": {"newlyCreated": {"blobObject": {"blobId": blob_id}}},
            "storedQuiltBlobs": [
                {"identifier": k, "quiltPatchId": v} for k, v in (patches or {}).items()
            ],
        },
    )


@pytest.fixture
def build_network(fake_sleep):
    """Build a network around a Router; relay is on unless disabled."""

    def factory(router, *, relay=True, transport=None):
        return HttpWalrusNetwork(
            aggregator_url=AGGREGATOR + "/",
            publisher_url=PUBLISHER,
            relay_url=RELAY if relay else None,
            relay_tip=RelayTipConfig(kind="max", max_tip=5_000),
            transport=transport
            or TransportSettings(read_retries=3, write_retries=3),
            client=httpx.AsyncClient(transport=httpx.MockTransport(router)),
            sleep=fake_sleep,
        )

    return factory


class TestWriteFiles:
    """Tests for quilt uploads."""

    async def test_direct_write_request(self, build_network):
        router = Router(newly_created(patches={"img_1": "patch-1"}))
        network = build_network(router)
        files = [WalrusFile(b"hello", "img_1", {"hash-sha256": "ab" * 32})]

        result = await network.write_files(
            files, DELETABLE, use_relay=False, owner_address="0xowner"
        )

        request = router.requests[0]
        assert request.method == "PUT"
        assert str(request.url).startswith(f"{PUBLISHER}/v1/quilts")
        assert request.url.params["epochs"] == "2"
        assert request.url.params["deletable"] == "true"
        assert request.url.params["send_object_to"] == "0xowner"
        assert "tip_kind" not in request.url.params
        assert b'name="_metadata"' in request.content
        metadata = [{"identifier": "img_1", "tags": files[0].tags}]
        assert json.dumps(metadata).encode() in request.content
        assert b"hello" in request.content
        assert result.blob_id == "quilt-1"
        assert result.patch_ids == {"img_1": "patch-1"}
        assert result.already_certified is False

    async def test_relay_write_carries_tip(self, build_network):
        router = Router(newly_created())
        network = build_network(router)

        await network.write_files(
            [WalrusFile(b"x", "a")], PERMANENT, use_relay=True
        )

        request = router.requests[0]
        assert str(request.url).startswith(f"{RELAY}/v1/quilts")
        assert request.url.params["permanent"] == "true"
        assert "deletable" not in request.url.params
        assert request.url.params["tip_kind"] == "max"
        assert request.url.params["tip_max"] == "5000"

    async def test_relay_requested_without_relay_goes_direct(self, build_network):
        router = Router(newly_created())
        network = build_network(router, relay=False)

        await network.write_files([WalrusFile(b"x", "a")], DELETABLE, use_relay=True)

        assert network.has_relay is False
        assert str(router.requests[0].url).startswith(PUBLISHER)

    async def test_already_certified(self, build_network):
        router = Router(
            httpx.Response(200, json={"alreadyCertified": {"blobId": "quilt-9"}})
        )
        network = build_network(router)

        result = await network.write_files(
            [WalrusFile(b"x", "a")], DELETABLE, use_relay=False
        )

        assert result.blob_id == "quilt-9"
        assert result.already_certified is True

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"unexpected": {}}),
            httpx.Response(200, text="not json"),
            httpx.Response(
                200, json={"newlyCreated": {"blobObject": {"blobId": ""}}}
            ),
        ],
    )
    async def test_malformed_response_is_protocol_error(self, build_network, response):
        network = build_network(Router(response))

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.write_files(
                [WalrusFile(b"x", "a")], DELETABLE, use_relay=True
            )

        assert exc_info.value.protocol_error is True
        assert exc_info.value.via_relay is True

    async def test_no_files(self, build_network):
        network = build_network(Router(newly_created()))
        with pytest.raises(ValueError):
            await network.write_files([], DELETABLE, use_relay=False)


class TestReads:
    """Tests for blob, listing and file reads."""

    async def test_read_blob(self, build_network):
        router = Router(httpx.Response(200, content=b"\x00raw"))
        network = build_network(router)

        assert await network.read_blob("blob-1") == b"\x00raw"
        assert str(router.requests[0].url) == f"{AGGREGATOR}/v1/blobs/blob-1"

    async def test_list_container(self, build_network):
        router = Router(
            httpx.Response(
                200,
                json=[
                    {"patch_id": "p1", "identifier": "img_1", "tags": {"size": 3}},
                    {"patch_id": "p2"},
                ],
            )
        )
        network = build_network(router)

        entries = await network.list_container("quilt-1")

        assert str(router.requests[0].url) == f"{AGGREGATOR}/v1/quilts/quilt-1/patches"
        assert [e.patch_id for e in entries] == ["p1", "p2"]
        assert entries[0].identifier == "img_1"
        assert entries[0].tags == {"size": "3"}
        assert entries[1].identifier is None

    async def test_list_container_protocol_error(self, build_network):
        network = build_network(Router(httpx.Response(200, json={"patches": 1})))
        with pytest.raises(WalrusRequestError) as exc_info:
            await network.list_container("quilt-1")
        assert exc_info.value.protocol_error is True

    async def test_read_file_recovers_tags_from_headers(self, build_network):
        router = Router(
            httpx.Response(
                200,
                content=b"dog",
                headers={
                    "X-Quilt-Patch-Identifier": "img_42",
                    "Hash-Sha256": "ab" * 32,
                    "walrus_head_hex": "646f67",
                    "Content-Type": "application/octet-stream",
                },
            )
        )
        network = build_network(router)

        fetched = await network.read_file("patch-42")

        assert str(router.requests[0].url) == (
            f"{AGGREGATOR}/v1/blobs/by-quilt-patch-id/patch-42"
        )
        assert fetched.contents == b"dog"
        assert fetched.identifier == "img_42"
        assert fetched.tags == {"hash-sha256": "ab" * 32, "walrus_head_hex": "646f67"}

    async def test_container_metadata_single_file(self, build_network):
        router = Router(
            httpx.Response(
                200,
                json=[{"patch_id": "p1", "identifier": "doc", "tags": {"a": "b"}}],
            )
        )
        network = build_network(router)

        assert await network.container_metadata("quilt-1") == {
            "a": "b",
            "identifier": "doc",
        }

    async def test_container_metadata_multi_file_is_empty(self, build_network):
        router = Router(
            httpx.Response(200, json=[{"patch_id": "p1"}, {"patch_id": "p2"}])
        )
        network = build_network(router)

        assert await network.container_metadata("quilt-1") == {}

    async def test_set_aggregator(self, build_network):
        router = Router(httpx.Response(200, content=b"x"))
        network = build_network(router)

        network.set_aggregator("https://other.test/")
        await network.read_blob("b")

        assert network.aggregator_url == "https://other.test"
        assert str(router.requests[0].url).startswith("https://other.test/v1/")


class TestRequestRetries:
    """Tests for per-request retries and error text."""

    async def test_server_error_retried(self, build_network, fake_sleep):
        router = Router(
            httpx.Response(503, text="busy"),
            httpx.Response(502, text="busy"),
            httpx.Response(200, content=b"ok"),
        )
        network = build_network(router)

        assert await network.read_blob("b") == b"ok"
        assert len(router.requests) == 3
        assert fake_sleep.delays == [3.0, 6.0]

    async def test_server_error_exhausts_retries(self, build_network, fake_sleep):
        network = build_network(Router(httpx.Response(500, text="boom")))

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.read_blob("b")

        assert exc_info.value.status_code == 500
        assert "HTTP 500: boom" in str(exc_info.value)
        assert len(fake_sleep.delays) == 2

    async def test_client_error_not_retried(self, build_network, fake_sleep):
        router = Router(httpx.Response(400, json={"error": {"message": "bad epochs"}}))
        network = build_network(router)

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.write_files(
                [WalrusFile(b"x", "a")], DELETABLE, use_relay=False
            )

        assert str(exc_info.value) == "HTTP 400: bad epochs"
        assert len(router.requests) == 1
        assert fake_sleep.delays == []

    async def test_not_found_text(self, build_network):
        network = build_network(Router(httpx.Response(404, text="no such blob")))

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.read_blob("missing")

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "HTTP 404: not found: no such blob"

    async def test_transport_error_retried_then_raised(self, build_network, fake_sleep):
        router = Router(httpx.ConnectError("connection refused"))
        network = build_network(router)

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.write_files(
                [WalrusFile(b"x", "a")], DELETABLE, use_relay=True
            )

        error = exc_info.value
        assert error.transport_error is True
        assert error.via_relay is True
        assert error.status_code is None
        assert str(error).startswith("fetch failed: ConnectError")
        assert len(router.requests) == 3
        assert fake_sleep.delays == [2.0, 4.0]

    async def test_transport_error_recovers(self, build_network):
        router = Router(
            httpx.ReadTimeout("timed out"), httpx.Response(200, content=b"ok")
        )
        network = build_network(router)

        assert await network.read_blob("b") == b"ok"

    async def test_backoff_is_capped(self, build_network, fake_sleep):
        transport = TransportSettings(
            read_retries=5, read_backoff_base_seconds=3.0, read_backoff_cap_seconds=5.0
        )
        network = build_network(
            Router(httpx.Response(503, text="busy")), transport=transport
        )

        with pytest.raises(WalrusRequestError):
            await network.read_blob("b")

        assert fake_sleep.delays == [3.0, 5.0, 5.0, 5.0]

    async def test_hanging_request_times_out_and_is_retried(
        self, build_network, fake_sleep
    ):
        calls = 0

        async def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return httpx.Response(200, content=b"ok")

        transport = TransportSettings(read_retries=3, read_request_timeout_seconds=0.05)
        network = build_network(handler, transport=transport)

        assert await network.read_blob("b") == b"ok"
        assert calls == 2
        assert fake_sleep.delays == [3.0]

    async def test_request_timeouts_exhaust_retries(self, build_network, fake_sleep):
        async def handler(request):
            await asyncio.sleep(10)

        transport = TransportSettings(
            write_retries=2, write_request_timeout_seconds=0.05
        )
        network = build_network(handler, transport=transport)

        with pytest.raises(WalrusRequestError) as exc_info:
            await network.write_files(
                [WalrusFile(b"x", "a")], DELETABLE, use_relay=False
            )

        assert exc_info.value.transport_error is True
        assert fake_sleep.delays == [2.0]


class TestHealth:
    """Tests for probing and health checks."""

    async def test_probe_returns_latency(self, build_network):
        router = Router(httpx.Response(200, json={}))
        network = build_network(router)

        latency = await network.probe("https://candidate.test/", timeout=1.0)

        assert latency >= 0
        assert str(router.requests[0].url) == "https://candidate.test/v1/api"

    async def test_probe_unhealthy_raises(self, build_network):
        network = build_network(Router(httpx.Response(503)))
        with pytest.raises(httpx.HTTPStatusError):
            await network.probe(AGGREGATOR, timeout=1.0)

    async def test_health_check_ok(self, build_network):
        network = build_network(Router(httpx.Response(200)))

        status = await network.health_check()

        assert status.healthy is True
        assert set(status.details) == {"aggregator", "publisher"}

    async def test_health_check_reports_unreachable(self, build_network):
        router = Router(
            httpx.Response(200), httpx.ConnectError("connection refused")
        )
        network = build_network(router)

        status = await network.health_check()

        assert status.healthy is False
        assert status.details["aggregator"].startswith("ok")
        assert status.details["publisher"].startswith("unreachable")

    async def test_aclose(self, build_network):
        network = build_network(Router(httpx.Response(200)))
        await network.aclose()
        assert network._client.is_closed is True
