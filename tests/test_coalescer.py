"""
Unit tests for RequestCoalescer.

Transports are FakeTransport doubles; concurrency is controlled with an
asyncio.Event gate so every caller is registered before anything settles.
"""
import asyncio

import pytest

from storefront.cache import RequestCoalescer, request_key
from storefront.transport import HTTPStatusError, Response, TransportError


CART = {"items": [{"id": "p1", "quantity": 2}], "total": 120}


@pytest.fixture
def coalescer(transport, clock):
    transport.routes["/api/cart"] = Response.from_json(CART)
    transport.routes["/api/products"] = Response.from_json([{"id": "p1"}])
    transport.routes["/api/orders"] = Response.from_json({"id": "o1"})
    return RequestCoalescer(transport, ttl=300, in_flight_timeout=30, clock=clock)


@pytest.mark.asyncio
async def test_concurrent_identical_requests_hit_transport_once(coalescer, transport):
    """N concurrent identical calls share one transport call and one result."""
    transport.gate = asyncio.Event()

    tasks = [
        asyncio.ensure_future(coalescer.perform_request("GET", "/api/products"))
        for _ in range(5)
    ]
    await asyncio.sleep(0)
    assert coalescer.get_stats()["pending_count"] == 1

    transport.gate.set()
    results = await asyncio.gather(*tasks)

    assert transport.call_count() == 1
    assert all(r == [{"id": "p1"}] for r in results)


@pytest.mark.asyncio
async def test_two_calls_within_100ms_share_one_slow_response(coalescer, transport):
    """Two GETs 10ms apart against a 50ms transport resolve to the same payload."""
    transport.delay = 0.05

    first = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    await asyncio.sleep(0.01)
    second = await coalescer.perform_request("GET", "/api/cart")

    assert transport.call_count("/api/cart") == 1
    assert (await first) is second
    assert second == CART


@pytest.mark.asyncio
async def test_get_result_served_from_cache_until_ttl(coalescer, transport, clock):
    await coalescer.perform_request("GET", "/api/cart")
    await coalescer.perform_request("GET", "/api/cart")
    assert transport.call_count() == 1

    clock.advance(301)
    await coalescer.perform_request("GET", "/api/cart")
    assert transport.call_count() == 2


@pytest.mark.asyncio
async def test_cached_null_body_is_served_without_network(coalescer, transport):
    """A logged-out /api/user answers null; that null is still a cache hit."""
    transport.routes["/api/user"] = Response.from_json(None)

    first = await coalescer.perform_request("GET", "/api/user")
    second = await coalescer.perform_request("GET", "/api/user")

    assert first is None and second is None
    assert transport.call_count("/api/user") == 1


@pytest.mark.asyncio
async def test_non_get_results_are_not_cached(coalescer, transport):
    await coalescer.perform_request("POST", "/api/orders", body={"product": "p1"})
    await coalescer.perform_request("POST", "/api/orders", body={"product": "p1"})

    assert transport.call_count() == 2
    assert coalescer.get_stats() == {"cache_size": 0, "pending_count": 0}


@pytest.mark.asyncio
async def test_concurrent_non_get_with_same_body_coalesce(coalescer, transport):
    transport.gate = asyncio.Event()
    body = {"product": "p1"}

    tasks = [
        asyncio.ensure_future(coalescer.perform_request("POST", "/api/orders", body=body))
        for _ in range(2)
    ]
    await asyncio.sleep(0)
    transport.gate.set()
    await asyncio.gather(*tasks)

    assert transport.call_count() == 1


@pytest.mark.asyncio
async def test_different_bodies_are_different_requests(coalescer, transport):
    transport.gate = asyncio.Event()

    tasks = [
        asyncio.ensure_future(coalescer.perform_request("POST", "/api/orders", body={"n": n}))
        for n in (1, 2)
    ]
    await asyncio.sleep(0)
    assert coalescer.get_stats()["pending_count"] == 2

    transport.gate.set()
    await asyncio.gather(*tasks)
    assert transport.call_count() == 2


@pytest.mark.asyncio
async def test_failure_reaches_every_sharer_and_next_call_retries(coalescer, transport):
    transport.gate = asyncio.Event()
    transport.failing.add("/api/cart")

    tasks = [
        asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
        for _ in range(3)
    ]
    await asyncio.sleep(0)
    transport.gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(r, TransportError) for r in results)
    assert len({id(r) for r in results}) == 1  # the very same error
    assert coalescer.get_stats() == {"cache_size": 0, "pending_count": 0}

    transport.failing.clear()
    assert await coalescer.perform_request("GET", "/api/cart") == CART
    assert transport.call_count() == 2


@pytest.mark.asyncio
async def test_non_2xx_raises_http_status_error(coalescer):
    with pytest.raises(HTTPStatusError) as exc_info:
        await coalescer.perform_request("GET", "/api/missing")

    assert exc_info.value.status == 404
    assert coalescer.get_stats()["pending_count"] == 0


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_request(coalescer, transport):
    transport.gate = asyncio.Event()

    leaving = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    staying = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    await asyncio.sleep(0)

    leaving.cancel()
    await asyncio.sleep(0)
    transport.gate.set()

    assert await staying == CART
    assert leaving.cancelled()
    assert transport.call_count() == 1
    assert coalescer.get_stats()["cache_size"] == 1


@pytest.mark.asyncio
async def test_safety_timeout_drops_marker_and_late_response_is_not_cached(
    coalescer, transport, clock
):
    transport.gate = asyncio.Event()

    slow = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    await asyncio.sleep(0)

    clock.advance(31)
    coalescer.sweep()
    assert coalescer.get_stats()["pending_count"] == 0

    transport.gate.set()
    assert await slow == CART  # the original caller still gets its answer
    assert coalescer.get_stats()["cache_size"] == 0


@pytest.mark.asyncio
async def test_request_after_safety_timeout_starts_new_call(coalescer, transport, clock):
    transport.gate = asyncio.Event()

    first = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    await asyncio.sleep(0)
    clock.advance(31)
    second = asyncio.ensure_future(coalescer.perform_request("GET", "/api/cart"))
    await asyncio.sleep(0)

    transport.gate.set()
    await asyncio.gather(first, second)

    assert transport.call_count() == 2
    assert coalescer.get_stats() == {"cache_size": 1, "pending_count": 0}


@pytest.mark.asyncio
async def test_clear_empties_cache(coalescer, transport):
    await coalescer.perform_request("GET", "/api/cart")
    coalescer.clear()

    assert coalescer.get_stats() == {"cache_size": 0, "pending_count": 0}
    await coalescer.perform_request("GET", "/api/cart")
    assert transport.call_count() == 2


def test_request_key_includes_method_url_and_body():
    assert request_key("get", "/api/cart") == "GET:/api/cart:"
    assert request_key("POST", "/api/orders", {"b": 1, "a": 2}) == 'POST:/api/orders:{"a": 2, "b": 1}'
