"""Image asset collection, deduplication and caching."""

from .cache import AssetCache, fingerprint
from .pipeline import AssetPipeline, AssetRecord, AssetWarning, CollectResult, collect

__all__ = [
    "AssetCache",
    "AssetPipeline",
    "AssetRecord",
    "AssetWarning",
    "CollectResult",
    "collect",
    "fingerprint",
]
