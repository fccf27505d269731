"""
Intercepting proxy that sits in front of the physical transport.

Every outbound request is classified and routed through the caching
strategy for its class, backed by durable versioned buckets.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..cache.core import Clock, ResourceClass, SystemClock
from ..transport import Request, Response, Transport
from .buckets import CacheBucket, DurableCacheStore
from .classify import Strategy, classify_request, strategy_for
from .hooks import ProxyHooks
from .strategies import (
    handle_api_request,
    handle_image_request,
    handle_network_first,
    handle_static_request,
)

logger = logging.getLogger("proxy.interceptor")


# Critical assets cached on install
PRECACHE_MANIFEST: List[str] = [
    "/",
    "/manifest.json",
    "/favicon.png",
    "/assets/alk-sanet.ttf",
    "/assets/hero-banner.webp",
    "/assets/discount-mobile.webp",
]


class ProxyState(Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class InstallError(Exception):
    """Precaching the manifest failed; the proxy stays uninstalled."""


def bucket_names(version: str) -> Dict[ResourceClass, str]:
    """Current-version bucket name per request class."""
    return {
        ResourceClass.STATIC: f"static-{version}",
        ResourceClass.IMAGE: f"image-{version}",
        ResourceClass.API: f"api-{version}",
    }


class NetworkInterceptProxy:
    """
    Versioned caching proxy with an install -> activate -> active lifecycle.

    Before activation requests go straight to the network. Once active,
    GET requests are handled by their class's strategy:

    - api: network-first, stored copy on failure, else 503 JSON
    - image: cache-first, 404 on failure
    - static: cache-first, 404 on failure
    - document: network-first into the static bucket, else 503 "Offline"

    Bucket handles are opened once during install/activate. SQLite reads
    and writes run in worker threads so the event loop keeps serving other
    requests meanwhile.

    The proxy is itself a transport, so it can be awaited like one.
    """

    def __init__(
        self,
        transport: Transport,
        store: DurableCacheStore,
        version: str = "v1.0.0",
        manifest: Optional[Sequence[str]] = None,
        hooks: Optional[ProxyHooks] = None,
        clock: Optional[Clock] = None,
    ):
        self._transport = transport
        self._store = store
        self.version = version
        self._manifest = list(manifest if manifest is not None else PRECACHE_MANIFEST)
        self.hooks = hooks or ProxyHooks()
        self._clock = clock or SystemClock()
        self._names = bucket_names(version)
        self._buckets: Dict[ResourceClass, CacheBucket] = {}
        self.state = ProxyState.PARSED

    @property
    def store(self) -> DurableCacheStore:
        return self._store

    @property
    def is_active(self) -> bool:
        return self.state == ProxyState.ACTIVE

    @property
    def current_bucket_names(self) -> List[str]:
        return list(self._names.values())

    def bucket(self, classification: ResourceClass) -> CacheBucket:
        """Durable bucket backing a request class (documents share the static one)."""
        if classification == ResourceClass.DOCUMENT:
            classification = ResourceClass.STATIC
        handle = self._buckets.get(classification)
        if handle is None:
            handle = self._store.open(self._names[classification])
            self._buckets[classification] = handle
        return handle

    def _capture_millis(self) -> int:
        return int(self._clock.now() * 1000)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def install(self) -> None:
        """
        Pre-populate the static bucket with the critical asset manifest.

        All-or-nothing: if any asset fails, nothing is stored and
        InstallError is raised.
        """
        self.state = ProxyState.INSTALLING
        logger.info(f"Caching {len(self._manifest)} static assets")

        fetched = []
        try:
            for url in self._manifest:
                request = Request("GET", url)
                response = await self._transport(request)
                if not response.ok:
                    raise InstallError(f"Precache of {url} failed with {response.status}")
                fetched.append((request, response))
        except InstallError:
            self.state = ProxyState.PARSED
            raise
        except Exception as e:
            self.state = ProxyState.PARSED
            raise InstallError(f"Precache failed: {e}") from e

        await asyncio.to_thread(self._store_precached, fetched)
        self.state = ProxyState.INSTALLED

    def _store_precached(self, fetched) -> None:
        bucket = self.bucket(ResourceClass.STATIC)
        for request, response in fetched:
            bucket.put(request, response)

    async def activate(self) -> List[str]:
        """
        Delete every bucket not belonging to the current version, then
        take over request handling.

        Returns:
            Names of the deleted buckets
        """
        if self.state == ProxyState.PARSED:
            await self.install()

        self.state = ProxyState.ACTIVATING
        deleted = await asyncio.to_thread(self._replace_old_buckets)
        self.state = ProxyState.ACTIVE
        return deleted

    def _replace_old_buckets(self) -> List[str]:
        keep = set(self._names.values())
        deleted = []
        for name in self._store.keys():
            if name not in keep:
                logger.info(f"Deleting old cache: {name}")
                self._store.delete(name)
                deleted.append(name)

        for classification in self._names:
            self.bucket(classification)
        return deleted

    # =========================================================================
    # Interception
    # =========================================================================

    def strategy_for_request(self, request: Request) -> Strategy:
        """Strategy the proxy applies to a request, decided by its class alone."""
        return strategy_for(classify_request(request))

    async def handle(self, request: Request) -> Response:
        """Answer an intercepted request."""
        if not self.is_active or request.method != "GET":
            return await self._transport(request)

        classification = classify_request(request)
        bucket = self.bucket(classification)

        if classification == ResourceClass.API:
            return await handle_api_request(
                request, bucket, self._transport, now_ms=self._capture_millis
            )
        if classification == ResourceClass.IMAGE:
            return await handle_image_request(request, bucket, self._transport)
        if classification == ResourceClass.STATIC:
            return await handle_static_request(request, bucket, self._transport)
        return await handle_network_first(request, bucket, self._transport)

    async def __call__(self, request: Request) -> Response:
        return await self.handle(request)

    # =========================================================================
    # Side channels
    # =========================================================================

    async def sync(self, tag: str) -> bool:
        return await self.hooks.sync(tag)

    async def push(self, data: Optional[Dict[str, Any]]):
        return await self.hooks.push(data)

    async def notification_click(self) -> None:
        await self.hooks.notification_click()

    def post_message(self, message: Optional[Dict[str, Any]]) -> None:
        self.hooks.post_message(message)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "version": self.version,
            "buckets": {
                name: len(CacheBucket(self._store, name))
                for name in self._names.values()
            },
        }
