"""
Shared test doubles for the cache and proxy tests.
"""
import asyncio

import pytest

from config.settings import Settings
from storefront.cache import ManualClock
from storefront.proxy import DurableCacheStore
from storefront.transport import Response, TransportError


class FakeTransport:
    """
    Transport double that counts calls and answers from a route table.

    - routes: url -> Response (unknown urls answer 404)
    - delay: seconds to suspend before answering
    - gate: optional asyncio.Event every call waits on
    - failing: urls that raise TransportError (or "*" for all)
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.delay = 0.0
        self.gate = None
        self.failing = set()

    async def __call__(self, request):
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if "*" in self.failing or request.url in self.failing:
            raise TransportError(f"connection refused: {request.url}")
        response = self.routes.get(request.url)
        if response is None:
            return Response(status=404, reason="Not Found")
        return response.clone()

    def call_count(self, url=None) -> int:
        if url is None:
            return len(self.calls)
        return sum(1 for r in self.calls if r.url == url)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return ManualClock(start=1_000.0)


@pytest.fixture
def store(tmp_path):
    return DurableCacheStore(tmp_path / "proxy_cache.db")


@pytest.fixture
def app_settings(tmp_path):
    return Settings(cache_directory=tmp_path, api_base_url="http://storefront.test")
