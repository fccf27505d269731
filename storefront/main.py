"""
Storefront cache service - administrative FastAPI application.

Exposes health, statistics and maintenance endpoints for the request cache.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query

from storefront.api_client import StorefrontClient, build_client
from storefront.proxy import InstallError
from storefront.schemas import (
    BucketDeleted,
    BucketsResponse,
    ClearResponse,
    HealthResponse,
    InvalidateResponse,
    PrefetchResponse,
    VersionResponse,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "Storefront Cache"


def create_app(client: Optional[StorefrontClient] = None) -> FastAPI:
    """Build the application around a client (a default one if omitted)."""
    client = client or build_client()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await client.start()
        except InstallError as e:
            # Proxy stays inactive and passes requests straight through
            logger.warning(f"Intercept proxy install failed: {e}")
        yield

    app = FastAPI(
        title=APP_NAME,
        description="Request caching and coalescing for the storefront API",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.client = client

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "proxy": client.proxy.state.value}

    @app.get("/version", response_model=VersionResponse)
    async def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "cache_version": client.proxy.version,
        }

    @app.get("/cache/stats")
    async def cache_stats():
        """Get cache statistics."""
        return client.get_stats()

    @app.post("/cache/clear", response_model=ClearResponse)
    async def cache_clear():
        """Clear every in-process cache. Durable buckets are untouched."""
        return {"cleared": client.clear()}

    @app.post("/cache/invalidate", response_model=InvalidateResponse)
    async def cache_invalidate(pattern: str = Query(..., min_length=1)):
        """Invalidate memory cache entries whose key contains `pattern`."""
        layer = client.layer
        return {
            "invalidated": {
                "catalog": layer.catalog.invalidate_pattern(pattern),
                "session": layer.session.invalidate_pattern(pattern),
                "cart": layer.cart.invalidate_pattern(pattern),
            }
        }

    @app.post("/cache/preload")
    async def cache_preload():
        """Run the critical resource preload waves and wait for them."""
        await client.preload_critical_resources()
        return {"status": "ok", "critical": client.layer.critical.get_stats()}

    @app.post("/cache/prefetch", status_code=202, response_model=PrefetchResponse)
    async def cache_prefetch(route: str = Query(..., description="Route about to be visited")):
        """Start warming a route's resources without waiting."""
        scheduled = client.layer.critical.prefetch_for_route(route)
        return {"route": route, "scheduled": len(scheduled)}

    @app.get("/cache/buckets", response_model=BucketsResponse)
    async def cache_buckets():
        """List durable proxy buckets."""
        return {
            "buckets": client.list_buckets(),
            "current": client.proxy.current_bucket_names,
        }

    @app.delete("/cache/buckets/{name}", response_model=BucketDeleted)
    async def delete_bucket(name: str):
        """Delete a durable bucket that is not in use by the current version."""
        if name in client.proxy.current_bucket_names:
            raise HTTPException(status_code=409, detail="Bucket belongs to the active version")
        if not client.proxy.store.delete(name):
            raise HTTPException(status_code=404, detail="Bucket not found")
        return {"deleted": name}

    return app


app = create_app()
