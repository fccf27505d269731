"""
Request classification and per-class strategy selection.
"""
import re
from enum import Enum
from typing import Dict

from ..cache.core import ResourceClass
from ..transport import Request


class Strategy(Enum):
    """How a request class consults the network and its bucket."""
    NETWORK_FIRST = "network_first"
    CACHE_FIRST = "cache_first"


API_PREFIX = "/api/"
IMAGE_PATTERN = re.compile(r"\.(png|jpg|jpeg|webp|avif|gif|svg)$", re.IGNORECASE)
STATIC_PATTERN = re.compile(r"\.(js|css|woff|woff2|ttf|ico)$", re.IGNORECASE)
STATIC_PREFIX = "/assets/"

STRATEGY_BY_CLASS: Dict[ResourceClass, Strategy] = {
    ResourceClass.API: Strategy.NETWORK_FIRST,
    ResourceClass.IMAGE: Strategy.CACHE_FIRST,
    ResourceClass.STATIC: Strategy.CACHE_FIRST,
    ResourceClass.DOCUMENT: Strategy.NETWORK_FIRST,
}


def classify_request(request: Request) -> ResourceClass:
    """
    Determine the resource class of a request from its path.

    Order matters: an image under /assets/ is still an image.
    """
    path = request.path

    if path.startswith(API_PREFIX):
        return ResourceClass.API
    if request.destination == "image" or IMAGE_PATTERN.search(path):
        return ResourceClass.IMAGE
    if STATIC_PATTERN.search(path) or path.startswith(STATIC_PREFIX):
        return ResourceClass.STATIC
    return ResourceClass.DOCUMENT


def strategy_for(classification: ResourceClass) -> Strategy:
    return STRATEGY_BY_CLASS[classification]
