"""
Unit tests for CriticalResourceManager wave ordering and route prefetching.
"""
import asyncio
import gc

import pytest

from storefront.cache import (
    CRITICAL_RESOURCES,
    CriticalResourceManager,
    Priority,
    ResourceClass,
    ResourceDescriptor,
)


class RecordingFetcher:
    """
    Descriptor fetcher that records the order of starts and settlements.

    `events` holds ("start", url) / ("settle", url) tuples.
    """

    def __init__(self, fail=(), delays=None):
        self.events = []
        self.fail = set(fail)
        self.delays = delays or {}

    async def __call__(self, resource):
        self.events.append(("start", resource.url))
        await asyncio.sleep(self.delays.get(resource.url, 0))
        self.events.append(("settle", resource.url))
        if resource.url in self.fail:
            raise RuntimeError(f"failed: {resource.url}")
        return {"url": resource.url}

    def started(self):
        return [url for kind, url in self.events if kind == "start"]

    def index(self, kind, url):
        return self.events.index((kind, url))


def descriptor(url, priority, cacheable=True):
    return ResourceDescriptor(url, ResourceClass.API, priority, cacheable)


WAVE_TABLE = [
    descriptor("/api/translations", Priority.HIGH),
    descriptor("/api/products", Priority.HIGH),
    descriptor("/api/cart", Priority.MEDIUM, cacheable=False),
    descriptor("/api/user", Priority.MEDIUM, cacheable=False),
    descriptor("/api/orders", Priority.LOW),
]


@pytest.mark.asyncio
async def test_medium_wave_waits_for_all_high_to_settle():
    """Medium fetches start only after both high fetches settled, one failing."""
    fetcher = RecordingFetcher(
        fail={"/api/translations"},
        delays={"/api/translations": 0.01, "/api/products": 0.03},
    )
    manager = CriticalResourceManager(fetcher, resources=WAVE_TABLE)

    await manager.preload_critical_resources()

    last_high_settle = max(
        fetcher.index("settle", "/api/translations"),
        fetcher.index("settle", "/api/products"),
    )
    for url in ("/api/cart", "/api/user"):
        assert fetcher.index("start", url) > last_high_settle


@pytest.mark.asyncio
async def test_low_priority_is_never_preloaded():
    fetcher = RecordingFetcher()
    manager = CriticalResourceManager(fetcher, resources=WAVE_TABLE)

    await manager.preload_critical_resources()

    assert "/api/orders" not in fetcher.started()


@pytest.mark.asyncio
async def test_failures_are_not_raised_and_only_cacheable_results_kept():
    fetcher = RecordingFetcher(fail={"/api/translations", "/api/user"})
    manager = CriticalResourceManager(fetcher, resources=WAVE_TABLE)

    await manager.preload_critical_resources()

    assert manager.get_cached_resource("/api/products") == {"url": "/api/products"}
    assert manager.get_cached_resource("/api/translations") is None
    assert manager.get_cached_resource("/api/cart") is None  # not cacheable


@pytest.mark.asyncio
async def test_second_preload_reuses_warmed_resources():
    fetcher = RecordingFetcher()
    manager = CriticalResourceManager(fetcher, resources=WAVE_TABLE)

    await manager.preload_critical_resources()
    await manager.preload_critical_resources()

    started = fetcher.started()
    assert started.count("/api/products") == 1
    assert started.count("/api/cart") == 2  # not cacheable, fetched each time


@pytest.mark.asyncio
async def test_attempt_timeout_abandons_interest_without_cancelling():
    fetcher = RecordingFetcher(delays={"/api/products": 0.2})
    table = [descriptor("/api/products", Priority.HIGH)]
    manager = CriticalResourceManager(fetcher, resources=table, attempt_timeout=0.01)

    await manager.preload_critical_resources()
    assert manager.is_pending("/api/products")

    await asyncio.sleep(0.3)
    assert manager.get_cached_resource("/api/products") == {"url": "/api/products"}


@pytest.mark.asyncio
async def test_abandoned_load_failure_is_retrieved():
    """A load that fails after its attempt timed out does not leak an unretrieved error."""
    reported = []
    asyncio.get_running_loop().set_exception_handler(lambda loop, ctx: reported.append(ctx))
    fetcher = RecordingFetcher(fail={"/api/products"}, delays={"/api/products": 0.05})
    table = [descriptor("/api/products", Priority.HIGH)]
    manager = CriticalResourceManager(fetcher, resources=table, attempt_timeout=0.01)

    await manager.preload_critical_resources()
    await asyncio.sleep(0.1)
    gc.collect()
    await asyncio.sleep(0)

    assert not manager.is_pending("/api/products")
    assert manager.get_cached_resource("/api/products") is None
    assert reported == []


@pytest.mark.asyncio
async def test_prefetch_for_route_skips_cached_resources():
    fetcher = RecordingFetcher()
    manager = CriticalResourceManager(fetcher, resources=WAVE_TABLE)
    await manager.preload_critical_resources()
    fetcher.events.clear()

    tasks = manager.prefetch_for_route("/admin")
    await asyncio.gather(*tasks)

    # products and translations were warmed by the preload
    assert fetcher.started() == ["/api/orders"]
    assert manager.get_cached_resource("/api/orders") == {"url": "/api/orders"}


@pytest.mark.asyncio
async def test_prefetch_does_not_block_and_dedupes_pending():
    fetcher = RecordingFetcher(delays={"/api/cart": 0.01})
    manager = CriticalResourceManager(fetcher)

    first = manager.prefetch_for_route("/cart")
    again = manager.prefetch_for_route("/cart")

    assert len(first) == 1
    assert again == []
    assert manager.is_pending("/api/cart")

    await asyncio.gather(*first)
    assert manager.get_cached_resource("/api/cart") == {"url": "/api/cart"}


@pytest.mark.asyncio
async def test_prefetch_failure_is_logged_not_raised():
    fetcher = RecordingFetcher(fail={"/api/user", "/api/orders"})
    manager = CriticalResourceManager(fetcher)

    tasks = manager.prefetch_for_route("/profile")
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(r, RuntimeError) for r in results)
    assert manager.get_stats()["pending_count"] == 0


def test_unknown_route_does_nothing():
    manager = CriticalResourceManager(RecordingFetcher())
    assert manager.prefetch_for_route("/nowhere") == []


def test_default_table_has_two_high_and_two_medium():
    priorities = [r.priority for r in CRITICAL_RESOURCES]
    assert priorities.count(Priority.HIGH) == 2
    assert priorities.count(Priority.MEDIUM) == 2
