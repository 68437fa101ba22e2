"""Acquisition coordinator: route, fetch through the cache, enrich."""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from propacq.utils.logger import get_logger
from propacq.config.settings import Config, get_config
from propacq.data.base import (
    DataProvider,
    DetailAdapter,
    ListingAdapter,
    ProviderError,
    ProviderUnavailable,
    RawRecord,
)
from propacq.data.cache_keys import PropertyLocator, search_key
from propacq.data.cache_manager import CacheCategory, PropertyCache
from propacq.domain.models import BatchMetrics, EnrichedRecord, SearchRequest
from propacq.domain.router import DataSourceRouter, RoutingDecision, RoutingPreferences
from propacq.orchestration.batch import BatchOptions, BatchProcessor


logger = get_logger(__name__)

PROVIDER_A = DataProvider.PROVIDER_A.value
PROVIDER_B = DataProvider.PROVIDER_B.value


@dataclass
class AcquisitionMetrics:
    """Counters for one acquire_properties call."""
    batch: BatchMetrics = field(default_factory=BatchMetrics)
    provider_calls: Dict[str, int] = field(
        default_factory=lambda: {PROVIDER_A: 0, PROVIDER_B: 0}
    )
    provider_errors: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    total_time_ms: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return self.provider_errors + self.batch.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'batch': self.batch.to_dict(),
            'provider_calls': dict(self.provider_calls),
            'provider_errors': self.provider_errors,
            'error_count': self.error_count,
            'cache_hits': self.cache_hits,
            'cache_misses': self.cache_misses,
            'total_time_ms': round(self.total_time_ms, 2),
            'errors': list(self.errors),
        }


@dataclass
class AcquisitionResult:
    """Records, the routing decision behind them, and metrics."""
    records: List[EnrichedRecord]
    decision: RoutingDecision
    metrics: AcquisitionMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            'records': [r.to_dict() for r in self.records],
            'decision': self.decision.to_dict(),
            'metrics': self.metrics.to_dict(),
        }


class AcquisitionCoordinator:
    """Wires the router, cache wrapper, provider adapters and batch processor."""

    def __init__(
        self,
        listing: ListingAdapter,
        detail: Optional[DetailAdapter] = None,
        router: Optional[DataSourceRouter] = None,
        cache: Optional[PropertyCache] = None,
        batch_processor: Optional[BatchProcessor] = None,
        config: Optional[Config] = None
    ):
        """Initialize coordinator.

        Args:
            listing: Listing provider adapter (Provider A)
            detail: Optional detail provider adapter (Provider B)
            router: Optional router (will create if not provided)
            cache: Optional cache wrapper (degraded no-op cache if not provided)
            batch_processor: Optional batch processor (will create if not provided)
            config: Optional configuration (defaults to global config)
        """
        self.config = config or get_config()
        self.listing = listing
        self.detail = detail
        self.router = router or DataSourceRouter(self.config.routing)
        self.cache = cache or PropertyCache(None, self.config)
        self.batch_processor = batch_processor or BatchProcessor(
            listing, detail, self.config, self.cache
        )

        self._running = False

    async def start(self):
        """Open provider clients and ping the cache store."""
        if self._running:
            logger.warning("Coordinator already running")
            return

        for adapter in (self.listing, self.detail):
            if adapter is None:
                continue
            try:
                await adapter.connect()
            except Exception as e:
                logger.error(f"Failed to connect {adapter.provider.value}: {e}")

        await self.cache.connect()
        self._running = True
        logger.info("Acquisition coordinator started")

    async def stop(self):
        """Close provider clients and the cache store."""
        for adapter in (self.listing, self.detail):
            if adapter is None:
                continue
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting {adapter.provider.value}: {e}")

        if self.cache.backing_store is not None:
            try:
                await self.cache.backing_store.close()
            except Exception as e:
                logger.warning(f"Error closing cache store: {e}")

        self._running = False
        logger.info("Acquisition coordinator stopped")

    async def acquire_properties(
        self,
        request: SearchRequest,
        preferences: Optional[RoutingPreferences] = None,
        options: Optional[BatchOptions] = None
    ) -> AcquisitionResult:
        """Fetch and enrich properties for a request.

        Never raises: provider and per-record failures are counted in the
        returned metrics.

        Args:
            request: Search request
            preferences: Routing preferences
            options: Batch enrichment switches

        Returns:
            AcquisitionResult with records in provider order
        """
        start_time = time.perf_counter()
        metrics = AcquisitionMetrics()
        hits_before = self.cache.stats.hits
        misses_before = self.cache.stats.misses

        try:
            decision = self.router.route(request, preferences)
        except Exception as e:
            logger.error(f"Routing failed, using default route: {e}", exc_info=True)
            metrics.errors.append(f"routing: {e}")
            decision = self.router.default_route()
        log = logger.bind(strategy=decision.strategy.value)
        log.info(
            f"Acquiring via {decision.strategy.value} "
            f"(est. ${decision.estimated_cost:.3f})"
        )

        raw_records = await self._collect_raw_records(request, decision, metrics)

        records: List[EnrichedRecord] = []
        try:
            records, metrics.batch = await self.batch_processor.process_batch(raw_records, options)
        except Exception as e:
            logger.error(f"Batch processing failed: {e}", exc_info=True)
            metrics.errors.append(f"batch: {e}")

        metrics.cache_hits = self.cache.stats.hits - hits_before
        metrics.cache_misses = self.cache.stats.misses - misses_before
        metrics.total_time_ms = (time.perf_counter() - start_time) * 1000

        log.info(
            f"Acquired {len(records)} records in {metrics.total_time_ms:.0f}ms "
            f"({metrics.error_count} errors, {metrics.cache_hits} cache hits)"
        )
        return AcquisitionResult(records=records, decision=decision, metrics=metrics)

    async def _collect_raw_records(
        self,
        request: SearchRequest,
        decision: RoutingDecision,
        metrics: AcquisitionMetrics
    ) -> List[RawRecord]:
        calls = []
        use_detail = decision.uses_provider_b and self.detail is not None and bool(request.address)
        use_listing = decision.uses_provider_a or not use_detail

        if decision.uses_provider_b and not use_detail:
            logger.info("Detail provider needs a street address; using listing discovery")

        if use_listing:
            calls.append((PROVIDER_A, self._discover_listings(request, metrics)))
        if use_detail:
            calls.append((PROVIDER_B, self._lookup_address(request, metrics)))

        results = await asyncio.gather(*(c for _, c in calls), return_exceptions=True)

        raw_records: List[RawRecord] = []
        for (provider, _), result in zip(calls, results):
            if isinstance(result, Exception):
                metrics.provider_errors += 1
                metrics.errors.append(f"{provider}: {result}")
                if isinstance(result, ProviderError):
                    logger.warning(f"{provider} call failed: {result}")
                else:
                    logger.error(f"Unexpected {provider} failure: {result}", exc_info=result)
                continue
            raw_records.extend(result)
        return raw_records

    async def _discover_listings(self, request: SearchRequest, metrics: AcquisitionMetrics) -> List[RawRecord]:
        criteria = request.to_criteria()

        async def fetch():
            metrics.provider_calls[PROVIDER_A] += 1
            found = await self.listing.search(criteria)
            return [r.to_dict() for r in found]

        key = search_key(self.cache.prefix, PROVIDER_A, criteria)
        cost = self.config.routing.call_cost(PROVIDER_A, 'search')
        payload = await self._with_timeout(
            PROVIDER_A, self.cache.get_or_fetch(key, fetch, CacheCategory.LISTING, cost)
        )
        return [RawRecord.from_dict(d) for d in payload or []]

    async def _lookup_address(self, request: SearchRequest, metrics: AcquisitionMetrics) -> List[RawRecord]:
        locator = PropertyLocator(
            address=request.address,
            city=request.city,
            state=request.state,
            zip_code=request.zip_code,
        )

        async def fetch():
            metrics.provider_calls[PROVIDER_B] += 1
            found = await self.detail.search(request.to_criteria())
            return found.to_dict() if found else None

        cost = self.config.routing.call_cost(PROVIDER_B, 'comprehensive')
        payload = await self._with_timeout(
            PROVIDER_B,
            self.cache.get_or_fetch_property(
                PROVIDER_B, locator, fetch, CacheCategory.PROPERTY_DETAIL, cost
            ),
        )
        return [RawRecord.from_dict(payload)] if payload else []

    async def _with_timeout(self, provider: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.config.providers.call_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable(provider, "call timed out") from e

    async def warm_addresses(
        self,
        locators: List[PropertyLocator],
        delay_seconds: Optional[float] = None
    ) -> Dict[str, int]:
        """Pre-populate detail-provider lookups for known addresses."""
        if self.detail is None:
            logger.warning("No detail provider configured; nothing to warm")
            return {'total': len(locators), 'warmed': 0, 'already_cached': 0, 'errors': 0}

        async def fetch(locator: PropertyLocator):
            found = await self.detail.search({
                'address': locator.address,
                'city': locator.city,
                'state': locator.state,
                'zip_code': locator.zip_code,
            })
            return found.to_dict() if found else None

        if delay_seconds is None:
            delay_seconds = self.config.batch.warm_delay_seconds
        return await self.cache.warm(
            PROVIDER_B,
            locators,
            fetch,
            CacheCategory.PROPERTY_DETAIL,
            self.config.routing.call_cost(PROVIDER_B, 'comprehensive'),
            delay_seconds=delay_seconds,
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self._running,
            'routing': self.router.get_routing_stats(),
            'cache': self.cache.get_stats(),
            'limiters': self.batch_processor.get_limiter_status(),
        }
