"""
Bounded in-process key/value cache with absolute expiry.

Eviction is by insertion order: when the cache is full the entry that was
inserted first is dropped, regardless of how recently it was read.
"""
import logging
from typing import Any, Dict, Optional

from .core import CacheEntry, Clock, SystemClock

logger = logging.getLogger("cache.memory")


class TTLMemoryCache:
    """
    Key -> payload store with lazy TTL expiry and a hard size limit.

    Usage:
        cache = TTLMemoryCache(default_ttl=300, max_size=50)
        cache.set("products", payload)
        cache.get("products")  # payload, or None once expired
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 100,
        clock: Optional[Clock] = None,
        name: str = "memory",
    ):
        """
        Args:
            default_ttl: Seconds an entry lives when `set` gets no ttl
            max_size: Maximum number of entries held at once
            clock: Time source (defaults to wall clock)
            name: Label used in logs and stats
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._clock = clock or SystemClock()
        self.name = name

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Return the fresh entry for `key`, dropping it if expired.

        Unlike `get`, a stored None payload is distinguishable from a miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not entry.is_fresh(self._clock.now()):
            del self._entries[key]
            logger.debug(f"[{self.name}] expired: {key}")
            return None

        return entry

    def get(self, key: str) -> Optional[Any]:
        """Return the payload for `key`, or None if absent or expired."""
        entry = self.get_entry(key)
        return entry.payload if entry is not None else None

    def has(self, key: str) -> bool:
        """Check if `key` holds a fresh entry."""
        return self.get_entry(key) is not None

    def set(self, key: str, payload: Any, ttl: Optional[float] = None) -> None:
        """
        Store `payload` under `key`.

        Args:
            key: Cache key
            payload: Value to store
            ttl: Seconds until expiry (defaults to the cache's default_ttl)
        """
        now = self._clock.now()
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self._default_ttl),
        )

        if key in self._entries:
            # Re-inserting moves the key to the back of the eviction order
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug(f"[{self.name}] evicted oldest entry: {oldest_key}")

        self._entries[key] = entry

    def delete(self, key: str) -> bool:
        """
        Remove a specific entry.

        Returns:
            True if entry was found and removed
        """
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock.now()
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all entries whose key contains `pattern`.

        Returns:
            Number of entries invalidated
        """
        to_delete = [k for k in self._entries if pattern in k]
        for key in to_delete:
            del self._entries[key]
        if to_delete:
            logger.info(
                f"[{self.name}] invalidated {len(to_delete)} entries matching '{pattern}'"
            )
        return len(to_delete)

    def clear(self) -> int:
        """
        Clear all entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries.clear()
        return count

    def keys(self):
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "name": self.name,
            "entries": len(self._entries),
            "max_size": self._max_size,
            "default_ttl": self._default_ttl,
        }
