"""
High-level cache wrapper for provider data
Multi-key property lookups, tiered TTLs and cost-savings accounting
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..config import get_config
from ..config.settings import Config
from ..utils import get_logger
from .cache import CacheStore
from .cache_keys import KeyStrategy, PropertyLocator, default_strategies

logger = get_logger(__name__)


class CacheCategory(Enum):
    """Data categories with their own TTL tier"""
    LISTING = "listing"
    IMAGES = "images"
    VALUATION = "valuation"
    COMPARABLES = "comparables"
    PROPERTY_DETAIL = "property_detail"
    CLIMATE = "climate"
    TAX = "tax"
    DEMOGRAPHIC = "demographic"


# Seconds. Listing data churns; slow-changing expensive data lives longest.
DEFAULT_TTLS: Dict[CacheCategory, int] = {
    CacheCategory.LISTING: 3600,
    CacheCategory.COMPARABLES: 7200,
    CacheCategory.VALUATION: 21600,
    CacheCategory.PROPERTY_DETAIL: 86400,
    CacheCategory.IMAGES: 604800,
    CacheCategory.CLIMATE: 604800,
    CacheCategory.TAX: 2592000,
    CacheCategory.DEMOGRAPHIC: 2592000,
}

# USD avoided per hit when the caller does not supply a cost
DEFAULT_CALL_COSTS: Dict[CacheCategory, float] = {
    CacheCategory.LISTING: 0.02,
    CacheCategory.IMAGES: 0.01,
    CacheCategory.VALUATION: 2.0,
    CacheCategory.COMPARABLES: 3.5,
    CacheCategory.PROPERTY_DETAIL: 1.5,
    CacheCategory.CLIMATE: 17.5,
    CacheCategory.TAX: 1.0,
    CacheCategory.DEMOGRAPHIC: 1.0,
}


@dataclass
class CacheEntry:
    """A cached payload under one key, with its access accounting"""
    key: str
    payload: Any
    category: str
    created_at: float
    last_accessed: float
    access_count: int
    estimated_cost: float
    cost_saved: float
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    @property
    def remaining_ttl(self) -> int:
        return int(self.expires_at - time.time())

    def record_access(self):
        """A hit: the first access is the fetch itself and never counts as savings"""
        self.access_count += 1
        self.last_accessed = time.time()
        self.cost_saved = self.estimated_cost * (self.access_count - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'payload': self.payload,
            'category': self.category,
            'created_at': self.created_at,
            'last_accessed': self.last_accessed,
            'access_count': self.access_count,
            'estimated_cost': self.estimated_cost,
            'cost_saved': self.cost_saved,
            'expires_at': self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheEntry':
        return cls(**data)


@dataclass
class CacheStats:
    """Running counters, reporting only"""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    store_errors: int = 0
    total_cost_saved: float = 0.0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class PropertyCache:
    """
    Cache wrapper in front of a CacheStore

    Property lookups try every key strategy in priority order and writes go
    through to every key form derivable from the input, so any later lookup
    path resolves to the same payload. When the store is unavailable at
    startup the wrapper runs degraded: every lookup misses and every store
    is discarded.
    """

    def __init__(
        self,
        store: Optional[CacheStore],
        config: Optional[Config] = None,
        strategies: Optional[List[KeyStrategy]] = None
    ):
        self.config = config or get_config()
        self.backing_store = store
        self.prefix = self.config.cache.key_prefix
        self.strategies = strategies or default_strategies(
            self.prefix, self.config.cache.coordinate_precision
        )
        self.stats = CacheStats()
        self.degraded = store is None

        self.ttls = dict(DEFAULT_TTLS)
        for name, seconds in self.config.cache.ttl_overrides.items():
            try:
                self.ttls[CacheCategory(name)] = seconds
            except ValueError:
                logger.warning(f"Ignoring TTL override for unknown category {name!r}")

    async def connect(self) -> bool:
        """Ping the backing store; switch to degraded mode if it is unreachable"""
        if self.backing_store is None:
            self.degraded = True
        else:
            try:
                self.degraded = not await self.backing_store.ping()
            except Exception as e:
                logger.error(f"Cache store ping failed: {e}")
                self.degraded = True

        if self.degraded:
            logger.warning("Cache store unavailable - running without cache")
        return not self.degraded

    def ttl_for(self, category: CacheCategory) -> int:
        return self.ttls[category]

    def derive_keys(self, provider: str, locator: PropertyLocator) -> List[str]:
        """Every key form derivable from the locator, in lookup priority order"""
        keys = []
        for strategy in self.strategies:
            key = strategy.derive(provider, locator)
            if key and key not in keys:
                keys.append(key)
        return keys

    # Low-level entry access

    async def _read_entry(self, key: str) -> Optional[CacheEntry]:
        if self.degraded:
            return None
        try:
            data = await self.backing_store.get(key)
        except Exception as e:
            self.stats.store_errors += 1
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if data is None:
            return None
        try:
            entry = CacheEntry.from_dict(data)
        except (TypeError, KeyError) as e:
            logger.warning(f"Discarding malformed cache entry {key}: {e}")
            return None
        return None if entry.is_expired else entry

    async def _write_entry(self, entry: CacheEntry, ttl: int) -> bool:
        if self.degraded:
            return False
        try:
            await self.backing_store.set(entry.key, entry.to_dict(), ttl)
            return True
        except Exception as e:
            self.stats.store_errors += 1
            logger.warning(f"Cache write failed for {entry.key}: {e}")
            return False

    async def _hit(self, entry: CacheEntry) -> Any:
        entry.record_access()
        self.stats.hits += 1
        self.stats.total_cost_saved += entry.estimated_cost
        await self._write_entry(entry, max(1, entry.remaining_ttl))
        logger.debug(
            f"Cache HIT {entry.key} (accesses={entry.access_count}, "
            f"saved=${entry.cost_saved:.2f})"
        )
        return entry.payload

    def _miss(self, description: str):
        self.stats.misses += 1
        logger.debug(f"Cache MISS {description}")

    # Keyed payloads (search results, images, details)

    async def get(self, key: str) -> Optional[Any]:
        """Single-key lookup"""
        entry = await self._read_entry(key)
        if entry is None:
            self._miss(key)
            return None
        return await self._hit(entry)

    async def put(
        self,
        key: str,
        payload: Any,
        category: CacheCategory,
        estimated_cost: Optional[float] = None
    ) -> bool:
        return bool(await self._store_keys([key], payload, category, estimated_cost))

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        category: CacheCategory,
        estimated_cost: Optional[float] = None
    ) -> Any:
        """Return the cached payload or fetch and cache it; fetch errors propagate"""
        cached = await self.get(key)
        if cached is not None:
            return cached
        payload = await fetch()
        if payload is not None:
            await self.put(key, payload, category, estimated_cost)
        return payload

    # Multi-key property payloads

    async def lookup(self, provider: str, locator: PropertyLocator) -> Optional[Any]:
        """Try exact address, rounded coordinates, then fuzzy address"""
        for key in self.derive_keys(provider, locator):
            entry = await self._read_entry(key)
            if entry is not None:
                return await self._hit(entry)

        self._miss(f"{provider} {locator.address or locator}")
        return None

    async def store(
        self,
        provider: str,
        locator: PropertyLocator,
        payload: Any,
        category: CacheCategory,
        estimated_cost: Optional[float] = None
    ) -> List[str]:
        """Write payload under every derivable key form; returns the keys written"""
        keys = self.derive_keys(provider, locator)
        if not keys:
            logger.debug(f"No cache key derivable for {locator}")
            return []
        return await self._store_keys(keys, payload, category, estimated_cost)

    async def get_or_fetch_property(
        self,
        provider: str,
        locator: PropertyLocator,
        fetch: Callable[[], Awaitable[Any]],
        category: CacheCategory = CacheCategory.PROPERTY_DETAIL,
        estimated_cost: Optional[float] = None
    ) -> Any:
        cached = await self.lookup(provider, locator)
        if cached is not None:
            return cached
        payload = await fetch()
        if payload is not None:
            await self.store(provider, locator, payload, category, estimated_cost)
        return payload

    async def _store_keys(
        self,
        keys: List[str],
        payload: Any,
        category: CacheCategory,
        estimated_cost: Optional[float]
    ) -> List[str]:
        if self.degraded:
            return []

        ttl = self.ttl_for(category)
        cost = DEFAULT_CALL_COSTS[category] if estimated_cost is None else estimated_cost
        now = time.time()
        written = []
        for key in keys:
            entry = CacheEntry(
                key=key,
                payload=payload,
                category=category.value,
                created_at=now,
                last_accessed=now,
                access_count=1,
                estimated_cost=cost,
                cost_saved=0.0,
                expires_at=now + ttl
            )
            if await self._write_entry(entry, ttl):
                written.append(key)

        self.stats.writes += len(written)
        logger.debug(f"Cached {len(written)}/{len(keys)} key forms ({category.value}, TTL {ttl}s)")
        return written

    async def purge(self, pattern: str) -> int:
        """Delete entries matching a glob pattern below the key prefix"""
        if self.degraded:
            return 0
        if not pattern.startswith(f"{self.prefix}:"):
            pattern = f"{self.prefix}:{pattern}"
        try:
            removed = await self.backing_store.delete_by_pattern(pattern)
        except Exception as e:
            self.stats.store_errors += 1
            logger.warning(f"Cache purge failed for {pattern}: {e}")
            return 0
        logger.info(f"Purged {removed} cache entries matching {pattern}")
        return removed

    async def warm(
        self,
        provider: str,
        locators: Iterable[PropertyLocator],
        fetch: Callable[[PropertyLocator], Awaitable[Any]],
        category: CacheCategory = CacheCategory.PROPERTY_DETAIL,
        estimated_cost: Optional[float] = None,
        delay_seconds: float = 0.0
    ) -> Dict[str, int]:
        """
        Pre-populate the cache for known high-traffic addresses

        Failures are logged and skipped, never raised.
        """
        summary = {'total': 0, 'warmed': 0, 'already_cached': 0, 'errors': 0}

        for locator in locators:
            summary['total'] += 1
            try:
                if await self.lookup(provider, locator) is not None:
                    summary['already_cached'] += 1
                    continue

                payload = await fetch(locator)
                if payload is None:
                    summary['errors'] += 1
                    logger.warning(f"Nothing to warm for {locator.address}")
                    continue

                await self.store(provider, locator, payload, category, estimated_cost)
                summary['warmed'] += 1
                logger.info(f"Warmed cache for {locator.address}, {locator.city}")
            except Exception as e:
                summary['errors'] += 1
                logger.warning(f"Failed to warm cache for {locator.address}: {e}")

            if delay_seconds:
                await asyncio.sleep(delay_seconds)

        logger.info(
            f"Cache warming complete: {summary['warmed']} warmed, "
            f"{summary['already_cached']} already cached, {summary['errors']} errors"
        )
        return summary

    def get_stats(self) -> Dict[str, Any]:
        return {
            'hits': self.stats.hits,
            'misses': self.stats.misses,
            'writes': self.stats.writes,
            'store_errors': self.stats.store_errors,
            'hit_rate': round(self.stats.hit_rate, 4),
            'total_cost_saved': round(self.stats.total_cost_saved, 4),
            'degraded': self.degraded,
        }

    def get_cost_savings_report(self) -> Dict[str, Any]:
        """Hit rate, savings and tuning hints"""
        recommendations = []
        total = self.stats.hits + self.stats.misses
        if total and self.stats.hit_rate < 0.7:
            recommendations.append("Consider cache warming for popular locations")
        if self.stats.misses > 100:
            recommendations.append("High miss count - consider longer TTLs for stable data")
        if self.stats.total_cost_saved > 50:
            recommendations.append("Cache strategy is saving significant provider spend")

        return {
            'cache_hit_rate': f"{self.stats.hit_rate * 100:.1f}%",
            'total_cache_hits': self.stats.hits,
            'total_cache_misses': self.stats.misses,
            'estimated_cost_saved': f"${self.stats.total_cost_saved:.2f}",
            'recommendations': recommendations,
        }
