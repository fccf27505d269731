"""
Request/response contract shared by every layer stacked in front of the network.

A transport is any awaitable callable taking a Request and returning a
Response. The physical transport talks HTTP via `requests`; the intercept
proxy and test doubles implement the same signature.
"""
import asyncio
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urljoin, urlsplit

import requests

logger = logging.getLogger("transport")


class TransportError(Exception):
    """The request never produced a response (connection refused, timeout...)."""


class HTTPStatusError(Exception):
    """A response arrived but its status is not 2xx."""

    def __init__(self, status: int, reason: str = "", url: str = ""):
        self.status = status
        self.reason = reason
        self.url = url
        super().__init__(f"HTTP {status}: {reason}".rstrip(": "))


@dataclass
class Request:
    """An outbound request."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    destination: str = ""  # e.g. "image" when issued by an <img> tag

    def __post_init__(self):
        self.method = self.method.upper()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def cache_key(self) -> str:
        """Identity of the request inside a durable bucket."""
        return f"{self.method} {self.url}"


@dataclass
class Response:
    """A response, either from the network or from a cache."""
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def text(self) -> str:
        return self.body.decode("utf-8")

    def clone(self) -> "Response":
        """Independent copy, safe to store while the original is returned."""
        return Response(
            status=self.status,
            headers=copy.copy(self.headers),
            body=self.body,
            reason=self.reason,
        )

    @classmethod
    def from_json(cls, data: Any, status: int = 200) -> "Response":
        return cls(
            status=status,
            headers={"content-type": "application/json"},
            body=json.dumps(data).encode("utf-8"),
        )


Transport = Callable[[Request], Awaitable[Response]]


class RequestsTransport:
    """
    Physical transport backed by `requests`.

    Blocking calls run in a worker thread so the event loop keeps
    interleaving other tasks while a request is on the wire.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def _resolve(self, url: str) -> str:
        if self.base_url and not urlsplit(url).scheme:
            return urljoin(self.base_url, url)
        return url

    def _send(self, request: Request) -> Response:
        body = request.body
        kwargs: Dict[str, Any] = {}
        if body is not None:
            if isinstance(body, (bytes, str)):
                kwargs["data"] = body
            else:
                kwargs["json"] = body

        try:
            resp = self._session.request(
                request.method,
                self._resolve(request.url),
                headers=request.headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.warning(f"Network error for {request.method} {request.url}: {e}")
            raise TransportError(str(e)) from e

        return Response(
            status=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.content,
            reason=resp.reason or "",
        )

    async def __call__(self, request: Request) -> Response:
        return await asyncio.to_thread(self._send, request)

    def close(self) -> None:
        self._session.close()
