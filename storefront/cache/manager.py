"""
Composition root for the in-process cache layer.

Everything here is built once at startup and handed to consumers; tests
build their own isolated layer.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..transport import HTTPStatusError, Request, Transport
from .batch import BatchRequestManager
from .coalescer import RequestCoalescer
from .core import Clock, DataCategory, ResourceDescriptor, SystemClock
from .memory import TTLMemoryCache
from .preload import CriticalResourceManager
from .ttl_policies import ENDPOINT_CATEGORIES, get_ttl_for_category

logger = logging.getLogger("cache.manager")


def json_fetcher(transport: Transport):
    """Build a descriptor fetcher that GETs a URL and parses its JSON body."""

    async def fetch(resource: ResourceDescriptor) -> Any:
        headers = {"accept": "application/json"}
        headers["cache-control"] = "max-age=300" if resource.cacheable else "no-cache"
        response = await transport(Request("GET", resource.url, headers=headers))
        if not response.ok:
            raise HTTPStatusError(response.status, response.reason, resource.url)
        return response.json()

    return fetch


@dataclass
class CacheLayer:
    """
    The in-process caches and request sharing primitives.

    - catalog / session / cart: independent TTL memory caches
    - coalescer: deduplicated, cached perform_request
    - batch: in-flight sharing for fire-and-forget warming
    - critical: wave-based preloading of critical resources
    """
    catalog: TTLMemoryCache
    session: TTLMemoryCache
    cart: TTLMemoryCache
    coalescer: RequestCoalescer
    batch: BatchRequestManager
    critical: CriticalResourceManager

    def memory_cache(self, category: DataCategory) -> TTLMemoryCache:
        return {
            DataCategory.CATALOG: self.catalog,
            DataCategory.SESSION: self.session,
            DataCategory.CART: self.cart,
        }[category]

    def endpoint_caches(self) -> Dict[str, TTLMemoryCache]:
        """API path prefix -> memory cache, for server-side response caching."""
        return {prefix: self.memory_cache(category) for prefix, category in ENDPOINT_CATEGORIES}

    def clear(self) -> Dict[str, int]:
        """
        Clear every cache in the layer.

        Returns:
            Number of entries cleared per memory cache
        """
        cleared = {
            "catalog": self.catalog.clear(),
            "session": self.session.clear(),
            "cart": self.cart.clear(),
        }
        self.coalescer.clear()
        self.critical.clear()
        logger.info(f"Cleared cache layer: {cleared}")
        return cleared

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.coalescer.get_stats(),
            "memory": {
                "catalog": self.catalog.get_stats(),
                "session": self.session.get_stats(),
                "cart": self.cart.get_stats(),
            },
            "batch": self.batch.get_stats(),
            "critical": self.critical.get_stats(),
        }


def build_cache_layer(
    transport: Transport,
    settings: Any,
    clock: Optional[Clock] = None,
    critical_transport: Optional[Transport] = None,
) -> CacheLayer:
    """
    Build a fresh cache layer.

    Args:
        transport: Transport behind the coalescer
        settings: Settings instance with cache configuration
        clock: Time source shared by every cache (wall clock by default)
        critical_transport: Transport for critical-resource loads
            (defaults to `transport`)
    """
    clock = clock or SystemClock()

    def memory(category: DataCategory) -> TTLMemoryCache:
        ttl, max_size = get_ttl_for_category(category, settings)
        return TTLMemoryCache(default_ttl=ttl, max_size=max_size, clock=clock, name=category.value)

    coalescer = RequestCoalescer(
        transport,
        cache=TTLMemoryCache(
            default_ttl=settings.coalescer_ttl_seconds,
            max_size=settings.coalescer_max_entries,
            clock=clock,
            name="coalescer",
        ),
        ttl=settings.coalescer_ttl_seconds,
        in_flight_timeout=settings.in_flight_timeout_seconds,
        clock=clock,
    )
    critical = CriticalResourceManager(
        json_fetcher(critical_transport or transport),
        attempt_timeout=settings.preload_timeout_seconds,
    )

    return CacheLayer(
        catalog=memory(DataCategory.CATALOG),
        session=memory(DataCategory.SESSION),
        cart=memory(DataCategory.CART),
        coalescer=coalescer,
        batch=BatchRequestManager(),
        critical=critical,
    )
