"""
Intercepting proxy with per-class caching strategies over durable buckets.
"""
from .buckets import CacheBucket, DurableCacheStore
from .classify import STRATEGY_BY_CLASS, Strategy, classify_request, strategy_for
from .hooks import LoggingNotificationSink, Notification, NotificationSink, ProxyHooks
from .interceptor import (
    PRECACHE_MANIFEST,
    InstallError,
    NetworkInterceptProxy,
    ProxyState,
    bucket_names,
)

__all__ = [
    "CacheBucket",
    "DurableCacheStore",
    "STRATEGY_BY_CLASS",
    "Strategy",
    "classify_request",
    "strategy_for",
    "LoggingNotificationSink",
    "Notification",
    "NotificationSink",
    "ProxyHooks",
    "PRECACHE_MANIFEST",
    "InstallError",
    "NetworkInterceptProxy",
    "ProxyState",
    "bucket_names",
]
