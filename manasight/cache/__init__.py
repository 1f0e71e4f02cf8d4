from manasight.cache.coordinator import (
    TAG_PRICE_FILTERED,
    TAG_RECOMMENDATIONS,
    TAG_SEARCH,
    CacheCoordinator,
    CacheLookup,
    build_cache_coordinator,
    card_tag,
)
from manasight.cache.edge import EdgeKVTier
from manasight.cache.images import ImageBlobTier, ImagePreloader, PreloadPriority
from manasight.cache.tiers import CacheEntry, CacheTier, CacheUnavailableError, HotCache, image_key

__all__ = [
    "TAG_PRICE_FILTERED",
    "TAG_RECOMMENDATIONS",
    "TAG_SEARCH",
    "CacheCoordinator",
    "CacheEntry",
    "CacheLookup",
    "CacheTier",
    "CacheUnavailableError",
    "EdgeKVTier",
    "HotCache",
    "ImageBlobTier",
    "ImagePreloader",
    "PreloadPriority",
    "build_cache_coordinator",
    "card_tag",
    "image_key",
]
