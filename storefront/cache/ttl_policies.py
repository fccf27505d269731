"""
TTL configuration and endpoint-to-category mapping.
"""
from typing import Dict, Optional, Tuple, Any

from .core import DataCategory


# Memory cache configuration by category
TTL_CONFIG: Dict[DataCategory, Dict[str, Any]] = {
    DataCategory.CATALOG: {
        "ttl": 300,         # 5 minutes
        "max_size": 50,
    },
    DataCategory.SESSION: {
        "ttl": 120,         # 2 minutes
        "max_size": 200,
    },
    DataCategory.CART: {
        "ttl": 60,          # 1 minute
        "max_size": 500,
    },
}

# Endpoint prefix -> category. Checked in order, first match wins.
ENDPOINT_CATEGORIES = [
    ("/api/products", DataCategory.CATALOG),
    ("/api/translations", DataCategory.CATALOG),
    ("/api/cart", DataCategory.CART),
    ("/api/user", DataCategory.SESSION),
    ("/api/orders", DataCategory.SESSION),
]


def get_ttl_for_category(
    category: DataCategory,
    settings: Optional[Any] = None,
) -> Tuple[float, int]:
    """
    Get memory cache configuration for a data category.

    Args:
        category: The data category
        settings: Optional Settings overriding the built-in defaults

    Returns:
        (ttl_seconds, max_size)
    """
    if settings is not None:
        prefix = category.value
        return (
            getattr(settings, f"{prefix}_cache_ttl_seconds"),
            getattr(settings, f"{prefix}_cache_max_size"),
        )

    config = TTL_CONFIG[category]
    return config["ttl"], config["max_size"]


def get_category_for_endpoint(path: str) -> Optional[DataCategory]:
    """
    Determine the data category for an API path.

    Returns None for paths that are not held in a memory cache.
    """
    for prefix, category in ENDPOINT_CATEGORIES:
        if path == prefix or path.startswith(prefix + "/"):
            return category
    return None
