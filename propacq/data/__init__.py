"""
Data acquisition layer
Provider adapters, cache stores and the multi-key cache wrapper
"""

from .base import (
    DataProvider,
    RawRecord,
    Image,
    DetailRecord,
    ProviderError,
    ProviderUnavailable,
    RateLimited,
    ProviderAdapter,
    ListingAdapter,
    DetailAdapter
)

from .listing_provider import ListingProvider
from .detail_provider import DetailProvider
from .cache import (
    CacheStore,
    CacheUnavailable,
    MemoryCacheStore,
    JsonFileCacheStore,
    RedisCacheStore,
    create_cache_store
)
from .cache_keys import PropertyLocator, KeyStrategy
from .cache_manager import PropertyCache, CacheCategory, CacheEntry

__all__ = [
    # Base classes
    'DataProvider',
    'RawRecord',
    'Image',
    'DetailRecord',
    'ProviderError',
    'ProviderUnavailable',
    'RateLimited',
    'ProviderAdapter',
    'ListingAdapter',
    'DetailAdapter',

    # Providers
    'ListingProvider',
    'DetailProvider',

    # Cache
    'CacheStore',
    'CacheUnavailable',
    'MemoryCacheStore',
    'JsonFileCacheStore',
    'RedisCacheStore',
    'create_cache_store',
    'PropertyLocator',
    'KeyStrategy',
    'PropertyCache',
    'CacheCategory',
    'CacheEntry'
]
