"""
Unit tests for BatchRequestManager.
"""
import asyncio

import pytest

from storefront.cache import BatchRequestManager


class CountingLoader:
    """request_fn double: counts calls per URL and waits on a gate."""

    def __init__(self, fail=()):
        self.calls = []
        self.gate = asyncio.Event()
        self.fail = set(fail)

    async def __call__(self, url):
        self.calls.append(url)
        await self.gate.wait()
        if url in self.fail:
            raise RuntimeError(f"failed: {url}")
        return {"url": url}


@pytest.mark.asyncio
async def test_batch_request_shares_in_flight_call():
    manager = BatchRequestManager()
    loader = CountingLoader()

    first = manager.batch_request("/api/products", lambda: loader("/api/products"))
    second = manager.batch_request("/api/products", lambda: loader("/api/products"))
    assert manager.pending_count == 1

    loader.gate.set()
    assert await first == await second == {"url": "/api/products"}
    assert loader.calls == ["/api/products"]


@pytest.mark.asyncio
async def test_completed_request_is_issued_again():
    """No result cache: a call after completion goes back to the network."""
    manager = BatchRequestManager()
    loader = CountingLoader()
    loader.gate.set()

    await manager.batch_request("/api/products", lambda: loader("/api/products"))
    assert manager.pending_count == 0

    await manager.batch_request("/api/products", lambda: loader("/api/products"))
    assert loader.calls == ["/api/products", "/api/products"]


@pytest.mark.asyncio
async def test_failure_deregisters_and_propagates():
    manager = BatchRequestManager()
    loader = CountingLoader(fail={"/api/cart"})
    loader.gate.set()

    with pytest.raises(RuntimeError):
        await manager.batch_request("/api/cart", lambda: loader("/api/cart"))

    assert not manager.is_pending("/api/cart")


@pytest.mark.asyncio
async def test_preload_requests_is_fire_and_forget():
    manager = BatchRequestManager()
    loader = CountingLoader(fail={"/api/user"})

    result = manager.preload_requests(["/api/products", "/api/user"], loader)

    assert result is None
    assert manager.pending_count == 2

    loader.gate.set()
    for _ in range(5):
        await asyncio.sleep(0)

    assert manager.pending_count == 0
    assert sorted(loader.calls) == ["/api/products", "/api/user"]


@pytest.mark.asyncio
async def test_preload_skips_urls_already_in_flight():
    manager = BatchRequestManager()
    loader = CountingLoader()

    in_flight = manager.batch_request("/api/products", lambda: loader("/api/products"))
    manager.preload_requests(["/api/products", "/api/translations"], loader)
    await asyncio.sleep(0)

    assert sorted(loader.calls) == ["/api/products", "/api/translations"]

    loader.gate.set()
    await in_flight
