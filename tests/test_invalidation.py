"""
Tests for tag-based cache invalidation.

These tests verify:
- purge_on_success fires exactly once, only after success
- Purge failures never fail the mutation
- Cloudflare purger request shape, batching and error handling
"""

import json

import httpx
import pytest

from pipecache.cache.invalidation import (
    MAX_TAGS_PER_REQUEST,
    CDNPurger,
    Purger,
    purge_on_success,
)
from pipecache.context import ExecutionContext
from pipecache.pipeline import Failure, Miss, Procedure

from conftest import RecordingPurger


# =============================================================================
# PURGE_ON_SUCCESS TESTS
# =============================================================================

@pytest.mark.asyncio
class TestPurgeOnSuccess:
    """Test the purge-after-mutation middleware."""

    async def test_success_purges_configured_tags_once(self, counting_handler):
        purger = RecordingPurger()
        handler, _ = counting_handler(payload={"id": 1})
        procedure = Procedure(
            "image.update", handler, [purge_on_success(["images", "image-1"], purger=purger)], mutation=True
        )

        result = await procedure.run({"id": 1}, ExecutionContext())

        assert isinstance(result, Miss)
        assert purger.calls == [["images", "image-1"]]

    async def test_failure_does_not_purge(self, counting_handler):
        purger = RecordingPurger()
        handler, _ = counting_handler(error=PermissionError("not yours"))
        procedure = Procedure(
            "image.update", handler, [purge_on_success(["images"], purger=purger)], mutation=True
        )

        result = await procedure.run({"id": 1}, ExecutionContext())

        assert isinstance(result, Failure)
        assert isinstance(result.error, PermissionError)
        assert purger.calls == []

    async def test_purge_exception_keeps_success(self, counting_handler):
        purger = RecordingPurger(error=RuntimeError("cloudflare down"))
        handler, _ = counting_handler(payload={"id": 1})
        procedure = Procedure("image.update", handler, [purge_on_success(["images"], purger=purger)])

        result = await procedure.run({}, ExecutionContext())

        assert isinstance(result, Miss)
        assert result.data == {"id": 1}
        assert len(purger.calls) == 1

    async def test_purge_rejected_keeps_success(self, counting_handler):
        purger = RecordingPurger(result=False)
        handler, _ = counting_handler(payload={"id": 1})
        procedure = Procedure("image.update", handler, [purge_on_success(["images"], purger=purger)])

        assert (await procedure.run({}, ExecutionContext())).ok

    async def test_purge_happens_after_handler(self):
        order = []
        purger = RecordingPurger()

        async def handler(input, ctx):
            order.append("handler")
            assert purger.calls == []
            return True

        procedure = Procedure("image.update", handler, [purge_on_success(["images"], purger=purger)])
        await procedure.run({}, ExecutionContext())

        assert order == ["handler"]
        assert purger.calls == [["images"]]


# =============================================================================
# CLOUDFLARE PURGER TESTS
# =============================================================================

def mock_client(requests, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"success": status_code == 200})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestCDNPurger:
    """Test the Cloudflare purge client."""

    async def test_disabled_without_credentials(self):
        purger = CDNPurger()
        assert purger.is_enabled is False
        assert await purger.purge(["images"]) is False

    async def test_satisfies_protocol(self):
        assert isinstance(CDNPurger(), Purger)

    async def test_purge_request(self):
        requests = []
        async with mock_client(requests) as client:
            purger = CDNPurger("zone-1", "token-1", client=client)
            assert await purger.purge(["images", "image-1"]) is True

        (request,) = requests
        assert request.method == "POST"
        assert request.url.path == "/client/v4/zones/zone-1/purge_cache"
        assert request.headers["Authorization"] == "Bearer token-1"
        assert json.loads(request.content) == {"tags": ["images", "image-1"]}

    async def test_large_tag_sets_are_batched(self):
        requests = []
        tags = [f"tag-{i}" for i in range(MAX_TAGS_PER_REQUEST + 5)]
        async with mock_client(requests) as client:
            purger = CDNPurger("zone-1", "token-1", client=client)
            assert await purger.purge(tags) is True

        assert len(requests) == 2
        assert len(json.loads(requests[0].content)["tags"]) == MAX_TAGS_PER_REQUEST
        assert len(json.loads(requests[1].content)["tags"]) == 5

    async def test_non_200_returns_false(self):
        requests = []
        async with mock_client(requests, status_code=400) as client:
            purger = CDNPurger("zone-1", "token-1", client=client)
            assert await purger.purge(["images"]) is False

    async def test_network_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            purger = CDNPurger("zone-1", "token-1", client=client)
            assert await purger.purge(["images"]) is False

    async def test_empty_tags_no_request(self):
        requests = []
        async with mock_client(requests) as client:
            purger = CDNPurger("zone-1", "token-1", client=client)
            assert await purger.purge([]) is True

        assert requests == []
