"""
Request coalescing to prevent duplicate upstream API calls.

When multiple concurrent requests ask for the same data, only one
upstream call is made and all requesters share the result. Successful
GET results are additionally kept in a TTL cache.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from ..transport import HTTPStatusError, Request, Transport
from .core import Clock, InFlightRequest, SystemClock
from .memory import TTLMemoryCache

logger = logging.getLogger("cache.coalescer")


def request_key(method: str, url: str, body: Any = None) -> str:
    """Build the coalescing key for a logical request."""
    body_part = json.dumps(body, sort_keys=True) if body is not None else ""
    return f"{method.upper()}:{url}:{body_part}"


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key registers an in-flight marker and starts a task
    - Subsequent requests for the same key await that task
    - When the task settles, every waiter sees the same result or error
    - GET successes are cached until their TTL runs out

    Runs on a single event loop. The marker is registered before the first
    await, so a second caller always observes it.

    Usage:
        coalescer = RequestCoalescer(transport)
        products = await coalescer.perform_request("GET", "/api/products")
    """

    def __init__(
        self,
        transport: Transport,
        cache: Optional[TTLMemoryCache] = None,
        ttl: float = 300.0,
        in_flight_timeout: float = 30.0,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the coalescer.

        Args:
            transport: Awaitable request primitive
            cache: Cache for GET results (a 1000-entry cache if omitted)
            ttl: Seconds a GET result stays cached
            in_flight_timeout: Age after which an in-flight marker is dropped
            clock: Time source shared with the cache
        """
        self._transport = transport
        self._clock = clock or SystemClock()
        if cache is None:
            cache = TTLMemoryCache(
                default_ttl=ttl, max_size=1000, clock=self._clock, name="coalescer"
            )
        self._cache = cache
        self._ttl = ttl
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = in_flight_timeout

    async def perform_request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Either serve from cache, join an in-flight request, or start a new one.

        Args:
            method: HTTP method
            url: Request URL
            body: JSON-serializable request body
            headers: Extra request headers

        Returns:
            The parsed JSON body (shared among all concurrent callers)

        Raises:
            HTTPStatusError: If the response status is not 2xx
            TransportError: If the network call fails
        """
        method = method.upper()
        key = request_key(method, url, body)

        self.sweep()

        if method == "GET":
            cached = self._cache.get_entry(key)
            if cached is not None:
                logger.debug(f"CACHE HIT: {key}")
                return cached.payload

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            logger.debug(f"Coalescing request for {key}")
        else:
            # Registered synchronously: no await between lookup and insert
            task = asyncio.ensure_future(self._execute(key, method, url, body, headers))
            in_flight = InFlightRequest(key=key, task=task, started_at=self._clock.now())
            self._in_flight[key] = in_flight
            task.add_done_callback(_consume_exception)
            logger.debug(f"Initiating fetch for {key}")

        # Shielded: one caller going away must not cancel the shared call
        return await asyncio.shield(in_flight.task)

    async def _execute(
        self,
        key: str,
        method: str,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]],
    ) -> Any:
        request_headers = {"content-type": "application/json"}
        request_headers.update(headers or {})

        try:
            response = await self._transport(
                Request(method=method, url=url, headers=request_headers, body=body)
            )
            if not response.ok:
                raise HTTPStatusError(response.status, response.reason, url)
            result = response.json()
        except Exception as e:
            logger.warning(f"Fetch failed for {key}: {e}")
            raise
        finally:
            still_ours = self._release(key)

        if method == "GET":
            if still_ours:
                self._cache.set(key, result, self._ttl)
            else:
                logger.info(f"Late response for {key} not cached (marker expired)")

        return result

    def _release(self, key: str) -> bool:
        """Remove this call's marker; False if it was already swept or replaced."""
        current = asyncio.current_task()
        in_flight = self._in_flight.get(key)
        if in_flight is not None and in_flight.task is current:
            del self._in_flight[key]
            return True
        return False

    def sweep(self) -> None:
        """Drop expired cache entries and in-flight markers past the safety timeout."""
        self._cache.purge_expired()

        now = self._clock.now()
        stale = [
            key for key, entry in self._in_flight.items()
            if now - entry.started_at > self._timeout
        ]
        for key in stale:
            logger.warning(
                f"In-flight request for {key} exceeded {self._timeout}s, dropping marker"
            )
            del self._in_flight[key]

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def clear(self) -> None:
        """
        Clear cached results and in-flight bookkeeping.

        Running calls are not cancelled; their waiters still get a result.
        """
        self._cache.clear()
        self._in_flight.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "cache_size": len(self._cache),
            "pending_count": len(self._in_flight),
        }


def _consume_exception(task: "asyncio.Future") -> None:
    # Every waiter may have gone away; retrieve so asyncio does not warn.
    if not task.cancelled():
        task.exception()
