"""
Caching strategies applied by the intercept proxy, one per request class.

Every strategy turns network failures into a response; none of them raise.
Bucket reads and writes run in worker threads, off the event loop.
"""
import asyncio
import logging
import time
from typing import Callable

from ..transport import Request, Response, Transport, TransportError
from .buckets import CacheBucket

logger = logging.getLogger("proxy.strategies")

CAPTURED_HEADER = "x-cache-captured"


def api_unavailable() -> Response:
    return Response.from_json(
        {"error": "Network error and no cache available"}, status=503
    )


def not_found() -> Response:
    return Response(status=404, body=b"")


def offline() -> Response:
    return Response(
        status=503,
        headers={"content-type": "text/plain"},
        body=b"Offline",
    )


def _epoch_millis() -> int:
    return int(time.time() * 1000)


async def handle_api_request(
    request: Request,
    bucket: CacheBucket,
    transport: Transport,
    now_ms: Callable[[], int] = _epoch_millis,
) -> Response:
    """
    Network-first: fresh data when reachable, last good copy otherwise.

    Successful responses are stored tagged with their capture time.
    """
    try:
        response = await transport(request)
        if not response.ok:
            raise TransportError(f"Network response not ok: {response.status}")

        tagged = response.clone()
        tagged.headers[CAPTURED_HEADER] = str(now_ms())
        await asyncio.to_thread(bucket.put, request, tagged)
        return tagged.clone()
    except Exception as e:
        cached = await asyncio.to_thread(bucket.match, request)
        if cached is not None:
            logger.info(f"Serving API from cache: {request.url} ({e})")
            return cached

        logger.warning(f"API request failed with no cached copy: {request.url}")
        return api_unavailable()


async def handle_image_request(
    request: Request,
    bucket: CacheBucket,
    transport: Transport,
) -> Response:
    """Cache-first; anything short of a good network response becomes a 404."""
    cached = await asyncio.to_thread(bucket.match, request)
    if cached is not None:
        return cached

    try:
        response = await transport(request)
        if not response.ok:
            raise TransportError(f"Network response not ok: {response.status}")
        await asyncio.to_thread(bucket.put, request, response.clone())
        return response
    except Exception:
        logger.info(f"Image fetch failed: {request.url}")
        return not_found()


async def handle_static_request(
    request: Request,
    bucket: CacheBucket,
    transport: Transport,
) -> Response:
    """Cache-first; non-2xx responses pass through uncached."""
    cached = await asyncio.to_thread(bucket.match, request)
    if cached is not None:
        return cached

    try:
        response = await transport(request)
    except Exception:
        logger.info(f"Static asset fetch failed: {request.url}")
        return not_found()

    if response.ok:
        await asyncio.to_thread(bucket.put, request, response.clone())
    return response


async def handle_network_first(
    request: Request,
    bucket: CacheBucket,
    transport: Transport,
) -> Response:
    """Network-first for documents; cached copy, then an offline page, on failure."""
    try:
        response = await transport(request)
    except Exception:
        cached = await asyncio.to_thread(bucket.match, request)
        if cached is not None:
            logger.info(f"Serving document from cache: {request.url}")
            return cached
        return offline()

    if response.ok:
        await asyncio.to_thread(bucket.put, request, response.clone())
    return response
