"""
In-flight-only request sharing for best-effort parallel prefetch.

Unlike RequestCoalescer nothing is cached: once a request settles the next
call for the same URL goes to the network again.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable

logger = logging.getLogger("cache.batch")


class BatchRequestManager:
    """Shares one running request per URL among concurrent callers."""

    def __init__(self):
        self._queue: Dict[str, asyncio.Task] = {}

    def batch_request(
        self,
        url: str,
        request_fn: Callable[[], Awaitable[Any]],
    ) -> "asyncio.Future":
        """
        Join the running request for `url`, or start one with `request_fn`.

        Returns an awaitable shared by every caller for the same URL. The
        entry is deregistered when the request completes, success or failure.
        """
        task = self._queue.get(url)
        if task is not None:
            return asyncio.shield(task)

        task = asyncio.ensure_future(request_fn())
        self._queue[url] = task
        task.add_done_callback(lambda t, url=url: self._done(url, t))
        return asyncio.shield(task)

    def _done(self, url: str, task: asyncio.Task) -> None:
        if self._queue.get(url) is task:
            del self._queue[url]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Batched request failed for {url}: {task.exception()}")

    def preload_requests(
        self,
        urls: Iterable[str],
        request_fn: Callable[[str], Awaitable[Any]],
    ) -> None:
        """
        Start requests for every URL not already in flight, without waiting.

        Failures are swallowed so a broken preload never reaches the caller.
        """
        for url in urls:
            if url in self._queue:
                continue
            shared = self.batch_request(url, lambda url=url: request_fn(url))
            shared.add_done_callback(_ignore_result)

    def is_pending(self, url: str) -> bool:
        return url in self._queue

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pending_count": len(self._queue),
            "pending_urls": list(self._queue.keys()),
        }


def _ignore_result(future: "asyncio.Future") -> None:
    if not future.cancelled():
        future.exception()
