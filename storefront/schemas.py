"""
Pydantic schemas for the cache administration endpoints
"""
from pydantic import BaseModel
from typing import Dict, List


# ===== HEALTH =====

class HealthResponse(BaseModel):
    """Service health and proxy lifecycle state"""
    status: str
    proxy: str


class VersionResponse(BaseModel):
    name: str
    version: str
    cache_version: str


# ===== MAINTENANCE =====

class ClearResponse(BaseModel):
    """Entries cleared per memory cache"""
    cleared: Dict[str, int]


class InvalidateResponse(BaseModel):
    """Entries invalidated per memory cache"""
    invalidated: Dict[str, int]


class PrefetchResponse(BaseModel):
    """Route warming that was started (not finished)"""
    route: str
    scheduled: int


# ===== BUCKETS =====

class BucketsResponse(BaseModel):
    """Durable proxy buckets"""
    buckets: List[str]
    current: List[str]


class BucketDeleted(BaseModel):
    deleted: str
