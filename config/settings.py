"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storefront API configuration
    api_base_url: str = "http://localhost:5000"
    request_timeout_seconds: float = 30.0

    # Request coalescer
    coalescer_ttl_seconds: float = 300.0       # 5 minutes for GET results
    coalescer_max_entries: int = 1000
    in_flight_timeout_seconds: float = 30.0    # Stale in-flight marker sweep

    # In-process memory caches (ttl seconds, max entries)
    catalog_cache_ttl_seconds: float = 300.0
    catalog_cache_max_size: int = 50
    session_cache_ttl_seconds: float = 120.0
    session_cache_max_size: int = 200
    cart_cache_ttl_seconds: float = 60.0
    cart_cache_max_size: int = 500

    # Durable intercept-proxy buckets
    cache_directory: Path = Path("./cache")
    cache_version: str = "v1.0.0"

    # Critical resource preloading
    preload_timeout_seconds: Optional[float] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
