"""Upstream metadata access."""

from .cache import TTLMetadataCache
from .metadata_client import FeishuMetadataClient

__all__ = [
    "FeishuMetadataClient",
    "TTLMetadataCache",
]
