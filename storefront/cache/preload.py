"""
Priority-ordered, wave-based prefetching of named storefront resources.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .core import Priority, ResourceClass, ResourceDescriptor

logger = logging.getLogger("cache.preload")


CRITICAL_RESOURCES: List[ResourceDescriptor] = [
    ResourceDescriptor("/api/translations", ResourceClass.API, Priority.HIGH, cacheable=True),
    ResourceDescriptor("/api/products", ResourceClass.API, Priority.HIGH, cacheable=True),
    ResourceDescriptor("/api/cart", ResourceClass.API, Priority.MEDIUM, cacheable=False),
    ResourceDescriptor("/api/user", ResourceClass.API, Priority.MEDIUM, cacheable=False),
]

# Resources the next page is going to need
ROUTE_RESOURCES: Dict[str, List[str]] = {
    "/catalogue": ["/api/products"],
    "/cart": ["/api/cart"],
    "/profile": ["/api/user", "/api/orders"],
    "/admin": ["/api/products", "/api/orders", "/api/translations"],
}

# Waves run in this order; LOW is only fetched on demand
PRELOAD_WAVES = (Priority.HIGH, Priority.MEDIUM)


ResourceFetcher = Callable[[ResourceDescriptor], Awaitable[Any]]


class CriticalResourceManager:
    """
    Warms critical resources in priority waves.

    Keeps its own URL-keyed cache so resources it already warmed are not
    fetched again; it is independent of RequestCoalescer.
    """

    def __init__(
        self,
        fetch_fn: ResourceFetcher,
        resources: Optional[Sequence[ResourceDescriptor]] = None,
        route_resources: Optional[Dict[str, List[str]]] = None,
        attempt_timeout: Optional[float] = None,
    ):
        """
        Args:
            fetch_fn: Coroutine function loading one descriptor's body
            resources: Descriptor table (defaults to CRITICAL_RESOURCES)
            route_resources: Route -> URLs table (defaults to ROUTE_RESOURCES)
            attempt_timeout: Max seconds a preload wave waits on one resource.
                Giving up only abandons interest; the load keeps running.
        """
        self._fetch_fn = fetch_fn
        self._resources = list(resources if resources is not None else CRITICAL_RESOURCES)
        self._route_resources = route_resources if route_resources is not None else ROUTE_RESOURCES
        self._attempt_timeout = attempt_timeout
        self._cache: Dict[str, Any] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    async def preload_critical_resources(self) -> None:
        """
        Load every HIGH descriptor concurrently, then every MEDIUM one.

        Each wave waits for all of its members to settle. Failures are
        logged and never raised.
        """
        for priority in PRELOAD_WAVES:
            wave = [r for r in self._resources if r.priority == priority]
            if not wave:
                continue

            logger.info(f"Preloading {len(wave)} {priority.value}-priority resources")
            results = await asyncio.gather(
                *(self._attempt(resource) for resource in wave),
                return_exceptions=True,
            )
            for resource, result in zip(wave, results):
                if isinstance(result, BaseException):
                    logger.warning(f"Preload failed for {resource.url}: {result!r}")

    async def _attempt(self, resource: ResourceDescriptor) -> Any:
        shared = asyncio.shield(self._load(resource))
        if self._attempt_timeout is None:
            return await shared
        return await asyncio.wait_for(shared, timeout=self._attempt_timeout)

    def _load(self, resource: ResourceDescriptor) -> "asyncio.Future":
        """Return a future for the resource's body, reusing cache and pending loads."""
        url = resource.url

        if resource.cacheable and url in self._cache:
            future = asyncio.get_running_loop().create_future()
            future.set_result(self._cache[url])
            return future

        task = self._pending.get(url)
        if task is not None:
            return task

        task = asyncio.ensure_future(self._fetch(resource))
        self._pending[url] = task
        task.add_done_callback(_consume_exception)
        return task

    async def _fetch(self, resource: ResourceDescriptor) -> Any:
        try:
            result = await self._fetch_fn(resource)
        finally:
            self._pending.pop(resource.url, None)

        if resource.cacheable:
            self._cache[resource.url] = result
        return result

    def prefetch_for_route(self, route: str) -> List[asyncio.Task]:
        """
        Warm the resources `route` needs, without waiting for them.

        URLs already cached or pending are skipped. Unknown routes are a no-op.

        Returns:
            Tasks started by this call
        """
        started = []
        for url in self._route_resources.get(route, []):
            if url in self._cache or url in self._pending:
                continue
            task = self._load(ResourceDescriptor(url, ResourceClass.API, Priority.LOW, cacheable=True))
            task.add_done_callback(lambda t, url=url: _log_prefetch_failure(url, t))
            started.append(task)

        if started:
            logger.debug(f"Prefetching {len(started)} resources for {route}")
        return started

    def get_cached_resource(self, url: str) -> Optional[Any]:
        """Get a warmed resource body if available."""
        return self._cache.get(url)

    def is_pending(self, url: str) -> bool:
        return url in self._pending

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cache_size": len(self._cache),
            "pending_count": len(self._pending),
            "cached_urls": list(self._cache.keys()),
        }


def _log_prefetch_failure(url: str, task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Prefetch failed for {url}: {error!r}")


def _consume_exception(task: asyncio.Task) -> None:
    # An attempt that timed out no longer awaits the task; retrieve so asyncio does not warn.
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned load finished with {task.exception()!r}")
