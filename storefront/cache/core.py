"""
Core cache data structures.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class DataCategory(Enum):
    """Data classes held in separate in-process memory caches."""
    CATALOG = "catalog"   # Products, translations - longest TTL
    SESSION = "session"   # Per-user data
    CART = "cart"         # Per-cart data - shortest TTL


class ResourceClass(Enum):
    """Static category of a request, used to select a caching strategy."""
    API = "api"
    IMAGE = "image"
    STATIC = "static"
    DOCUMENT = "document"


class Priority(Enum):
    """Prefetch priority of a resource descriptor."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Clock(Protocol):
    """Source of the current time in seconds."""

    def now(self) -> float:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """
    Clock that only moves when told to.

    Used to advance simulated time when exercising TTL expiry.
    """

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached payload with an absolute expiry.

    Immutable once created; expiry is checked lazily on read.
    """
    key: str
    payload: Any
    created_at: float
    expires_at: float

    def __post_init__(self):
        if self.expires_at <= self.created_at:
            raise ValueError(
                f"Cache entry {self.key!r} must expire after it is created"
            )

    def is_fresh(self, now: float) -> bool:
        """Check if the entry may still be served at `now`."""
        return now <= self.expires_at


@dataclass(frozen=True)
class ResourceDescriptor:
    """Declarative record of a URL used for prefetch planning."""
    url: str
    classification: ResourceClass = ResourceClass.API
    priority: Priority = Priority.LOW
    cacheable: bool = True


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request shared by every caller of a key."""
    key: str
    task: Any  # asyncio.Task holding the deferred result
    started_at: float = field(default_factory=time.time)
