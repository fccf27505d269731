"""
Storefront API client.

Requests flow through the layers stacked in front of the network:

    perform_request -> RequestCoalescer -> NetworkInterceptProxy -> transport

The coalescer and the proxy never talk to each other; they only share the
transport call signature.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from dotenv import load_dotenv

from storefront.cache import CacheLayer, Clock, build_cache_layer
from storefront.proxy import DurableCacheStore, NetworkInterceptProxy
from storefront.transport import RequestsTransport, Transport
from config.settings import Settings, settings as default_settings

load_dotenv()

logger = logging.getLogger("api_client")

PROXY_DB_NAME = "proxy_cache.db"


class StorefrontClient:
    """
    Application-facing entry point to the request cache.

    Usage:
        client = build_client()
        await client.start()
        products = await client.perform_request("GET", "/api/products")
    """

    def __init__(self, layer: CacheLayer, proxy: NetworkInterceptProxy):
        self.layer = layer
        self.proxy = proxy

    async def start(self) -> None:
        """Install and activate the intercept proxy."""
        await self.proxy.install()
        deleted = await self.proxy.activate()
        if deleted:
            logger.info(f"Removed {len(deleted)} outdated cache buckets")

    async def perform_request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Deduplicated request returning the parsed JSON body."""
        return await self.layer.coalescer.perform_request(method, url, body, headers)

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        return await self.perform_request("GET", url, headers=headers)

    async def preload_critical_resources(self) -> None:
        await self.layer.critical.preload_critical_resources()

    def prefetch_for_route(self, route: str) -> None:
        """Warm the next page's resources without waiting."""
        self.layer.critical.prefetch_for_route(route)

    def preload_requests(self, urls: Iterable[str]) -> None:
        """Fire-and-forget GETs for `urls`, sharing any already in flight."""
        self.layer.batch.preload_requests(urls, self.get)

    def clear(self) -> Dict[str, int]:
        return self.layer.clear()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.layer.get_stats()
        stats["proxy"] = self.proxy.get_stats()
        return stats

    def list_buckets(self) -> List[str]:
        return self.proxy.store.keys()


def build_client(
    settings: Optional[Settings] = None,
    transport: Optional[Transport] = None,
    clock: Optional[Clock] = None,
    store: Optional[DurableCacheStore] = None,
) -> StorefrontClient:
    """
    Build a client with its own cache layer and proxy.

    Args:
        settings: Configuration (module settings by default)
        transport: Physical transport (requests-based by default)
        clock: Time source for the memory caches and the proxy capture stamps
        store: Durable bucket store (SQLite file under cache_directory by default)
    """
    settings = settings or default_settings
    transport = transport or RequestsTransport(
        base_url=settings.api_base_url,
        timeout=settings.request_timeout_seconds,
    )
    store = store or DurableCacheStore(Path(settings.cache_directory) / PROXY_DB_NAME)

    proxy = NetworkInterceptProxy(
        transport, store, version=settings.cache_version, clock=clock
    )
    layer = build_cache_layer(proxy, settings, clock=clock)
    return StorefrontClient(layer, proxy)
