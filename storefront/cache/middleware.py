"""
Server-side response caching for storefront API routes.

GET responses for configured path prefixes are stored in the matching
memory cache and replayed with `X-Cache: HIT` until they expire.

Mount it on the application that serves the storefront `/api` routes,
usually with `CacheLayer.endpoint_caches()` as the prefix table. The cache
admin app has no such routes and does not install it.
"""
import json
import logging
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .memory import TTLMemoryCache

logger = logging.getLogger("cache.middleware")


def default_cache_key(request: Request) -> str:
    """Path plus sorted query string."""
    query = "&".join(f"{k}={v}" for k, v in sorted(request.query_params.multi_items()))
    return f"{request.url.path}?{query}" if query else request.url.path


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """
    Serve cached JSON bodies for GET requests under known prefixes.

    Usage:
        app.add_middleware(
            ResponseCacheMiddleware,
            caches={"/api/products": catalog_cache, "/api/cart": cart_cache},
        )
    """

    def __init__(
        self,
        app,
        caches: Dict[str, TTLMemoryCache],
        key_fn: Callable[[Request], str] = default_cache_key,
    ):
        super().__init__(app)
        self._caches = caches
        self._key_fn = key_fn

    def _cache_for(self, path: str) -> Optional[TTLMemoryCache]:
        for prefix, cache in self._caches.items():
            if path == prefix or path.startswith(prefix + "/"):
                return cache
        return None

    async def dispatch(self, request: Request, call_next):
        cache = self._cache_for(request.url.path)
        if request.method != "GET" or cache is None:
            return await call_next(request)

        key = self._key_fn(request)
        cached = cache.get_entry(key)
        if cached is not None:
            logger.debug(f"CACHE HIT: {key}")
            return JSONResponse(cached.payload, headers={"X-Cache": "HIT"})

        response = await call_next(request)
        if not (200 <= response.status_code < 300):
            return response
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        cache.set(key, json.loads(body))

        headers = dict(response.headers)
        headers.pop("content-length", None)
        headers["X-Cache"] = "MISS"
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )


def clear_cache_by_pattern(cache: TTLMemoryCache, pattern: str) -> int:
    """Remove every entry whose key contains `pattern`."""
    return cache.invalidate_pattern(pattern)
