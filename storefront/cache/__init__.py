"""
In-process caching with TTL memory caches, request coalescing and preloading.
"""
from .core import (
    CacheEntry,
    Clock,
    DataCategory,
    InFlightRequest,
    ManualClock,
    Priority,
    ResourceClass,
    ResourceDescriptor,
    SystemClock,
)
from .ttl_policies import (
    TTL_CONFIG,
    get_ttl_for_category,
    get_category_for_endpoint,
)
from .memory import TTLMemoryCache
from .coalescer import RequestCoalescer, request_key
from .batch import BatchRequestManager
from .preload import CRITICAL_RESOURCES, ROUTE_RESOURCES, CriticalResourceManager
from .manager import CacheLayer, build_cache_layer

__all__ = [
    # Core types
    "CacheEntry",
    "Clock",
    "DataCategory",
    "InFlightRequest",
    "ManualClock",
    "Priority",
    "ResourceClass",
    "ResourceDescriptor",
    "SystemClock",
    # TTL policies
    "TTL_CONFIG",
    "get_ttl_for_category",
    "get_category_for_endpoint",
    # Caches and request sharing
    "TTLMemoryCache",
    "RequestCoalescer",
    "request_key",
    "BatchRequestManager",
    "CRITICAL_RESOURCES",
    "ROUTE_RESOURCES",
    "CriticalResourceManager",
    # Composition
    "CacheLayer",
    "build_cache_layer",
]
