"""Batch processor: three-phase enrichment of raw provider records.

Phase 1 parses addresses under a high-ceiling limiter, phase 2 fetches
images/details under a low-ceiling limiter with a per-call timeout, and
phase 3 assigns the final quality tier once all enrichment is done.
Output order and length always match the input.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from propacq.config.settings import Config, get_config
from propacq.data.base import (
    DataProvider,
    DetailAdapter,
    ListingAdapter,
    ProviderUnavailable,
    RawRecord,
    to_float,
    to_int,
)
from propacq.data.cache_keys import identifier_key
from propacq.data.cache_manager import CacheCategory, PropertyCache
from propacq.domain.address import AddressParser
from propacq.domain.models import (
    BatchMetrics,
    DataQuality,
    EnrichedRecord,
    quality_counts,
)
from propacq.domain.quality import assess_quality
from propacq.utils.limiter import CallTimeout, ConcurrencyLimiter
from propacq.utils.logger import get_logger, log_async_performance

logger = get_logger(__name__)

PHASE_ADDRESS = "address_normalization"
PHASE_ENRICHMENT = "enrichment"
PHASE_QUALITY = "quality_assessment"


@dataclass
class BatchOptions:
    """Per-invocation switches for phase 2."""
    include_images: bool = True
    include_details: bool = False


class BatchProcessor:
    """Enriches raw records in parallel with independent phase limits."""

    def __init__(
        self,
        listing_adapter: Optional[ListingAdapter] = None,
        detail_adapter: Optional[DetailAdapter] = None,
        config: Optional[Config] = None,
        cache: Optional[PropertyCache] = None
    ):
        """Initialize the batch processor.

        Args:
            listing_adapter: Source of images for listing-provider records
            detail_adapter: Source of detail payloads for detail-provider records
            config: Configuration (defaults to global config)
            cache: Optional cache wrapper for image/detail payloads
        """
        self.config = config or get_config()
        self.listing_adapter = listing_adapter
        self.detail_adapter = detail_adapter
        self.cache = cache

        batch = self.config.batch
        self.call_timeout = self.config.providers.call_timeout
        self.parser = AddressParser(batch.home_city, batch.home_state)
        self.address_limiter = ConcurrencyLimiter("address", batch.address_concurrency)
        self.enrichment_limiter = ConcurrencyLimiter(
            "enrichment", batch.enrichment_concurrency, timeout=self.call_timeout
        )

    @log_async_performance(logger)
    async def process_batch(
        self,
        raw_records: Sequence[Union[RawRecord, Dict[str, Any]]],
        options: Optional[BatchOptions] = None
    ) -> Tuple[List[EnrichedRecord], BatchMetrics]:
        """Run all three phases over a result set.

        Args:
            raw_records: Provider records (RawRecord or its dict form)
            options: Phase 2 switches

        Returns:
            (enriched records in input order, batch metrics)
        """
        options = options or BatchOptions()
        metrics = BatchMetrics(total_input=len(raw_records))
        started = time.perf_counter()
        log = logger.bind(batch_size=len(raw_records))

        log.info(
            f"Starting batch of {len(raw_records)} records "
            f"(address limit={self.address_limiter.limit}, "
            f"enrichment limit={self.enrichment_limiter.limit})"
        )

        phase_start = time.perf_counter()
        records = await self._normalize_addresses(raw_records, metrics)
        metrics.phase_timings[PHASE_ADDRESS] = _elapsed_ms(phase_start)

        phase_start = time.perf_counter()
        records = await self._enrich(records, options, metrics)
        metrics.phase_timings[PHASE_ENRICHMENT] = _elapsed_ms(phase_start)

        phase_start = time.perf_counter()
        records = [replace(r, data_quality=assess_quality(r)) for r in records]
        metrics.phase_timings[PHASE_QUALITY] = _elapsed_ms(phase_start)

        metrics.quality_histogram = quality_counts(records)
        metrics.succeeded = len(records) - metrics.poor_count
        metrics.total_time_ms = _elapsed_ms(started)

        log.info(
            f"Batch complete: {metrics.succeeded}/{metrics.total_input} usable, "
            f"{metrics.errors} errors, {metrics.throughput:.1f} records/s"
        )
        return records, metrics

    # Phase 1

    async def _normalize_addresses(
        self,
        raw_records: Sequence[Union[RawRecord, Dict[str, Any]]],
        metrics: BatchMetrics
    ) -> List[EnrichedRecord]:
        tasks = [
            self.address_limiter.run(self._normalize_one, raw, index)
            for index, raw in enumerate(raw_records)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        records = []
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                logger.warning(f"Address processing failed for record {index}: {result}")
                metrics.errors += 1
                records.append(self._fallback_record(raw_records[index], index))
            else:
                records.append(result)

        parsed = sum(1 for r in records if r.data_quality != DataQuality.POOR)
        logger.debug(f"Address parsing: {parsed}/{len(records)} parsed")
        return records

    async def _normalize_one(self, raw: Union[RawRecord, Dict[str, Any]], index: int) -> EnrichedRecord:
        started = time.perf_counter()
        if isinstance(raw, dict):
            raw = RawRecord.from_dict(raw)

        address = self.parser.parse(raw.address)
        coordinates = None
        if raw.latitude is not None and raw.longitude is not None:
            coordinates = (float(raw.latitude), float(raw.longitude))

        return EnrichedRecord(
            id=str(raw.identifier) if raw.identifier else f"property_{index}",
            address=address or self.parser.synthetic(raw.address),
            price=raw.price,
            beds=raw.beds,
            baths=raw.baths,
            sqft=raw.sqft,
            coordinates=coordinates,
            primary_image=raw.image_url,
            has_image=bool(raw.image_url),
            # Provisional; phase 3 assigns the final tier
            data_quality=DataQuality.PARTIAL if address else DataQuality.POOR,
            source_provider=raw.provider,
            identifier=str(raw.identifier) if raw.identifier else None,
            processing_time_ms=_elapsed_ms(started),
        )

    def _fallback_record(self, raw: Any, index: int) -> EnrichedRecord:
        """Poor-quality record built leniently from whatever the raw input carries"""
        def pick(name):
            if isinstance(raw, dict):
                return raw.get(name)
            return getattr(raw, name, None)

        identifier = pick('identifier')
        latitude, longitude = to_float(pick('latitude')), to_float(pick('longitude'))
        return EnrichedRecord(
            id=str(identifier) if identifier else f"property_{index}",
            address=self.parser.synthetic(pick('address') if isinstance(pick('address'), str) else None),
            price=to_float(pick('price')),
            beds=to_int(pick('beds')),
            baths=to_float(pick('baths')),
            sqft=to_int(pick('sqft')),
            coordinates=(latitude, longitude) if latitude is not None and longitude is not None else None,
            primary_image=pick('image_url'),
            has_image=bool(pick('image_url')),
            data_quality=DataQuality.POOR,
            source_provider=pick('provider'),
            identifier=str(identifier) if identifier else None,
            fallback=True,
        )

    # Phase 2

    def _is_candidate(self, record: EnrichedRecord, options: BatchOptions) -> bool:
        if record.data_quality == DataQuality.POOR:
            return False
        if not (record.address.street and record.address.city and record.identifier):
            return False
        if record.source_provider == DataProvider.PROVIDER_B.value:
            return options.include_details and self.detail_adapter is not None
        return options.include_images and self.listing_adapter is not None

    async def _enrich(
        self,
        records: List[EnrichedRecord],
        options: BatchOptions,
        metrics: BatchMetrics
    ) -> List[EnrichedRecord]:
        candidates = [i for i, r in enumerate(records) if self._is_candidate(r, options)]
        metrics.enrichment_candidates = len(candidates)
        logger.debug(f"{len(candidates)} records need enrichment")

        if not candidates:
            return records

        tasks = [self._enrich_guarded(records[i]) for i in candidates]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        enriched = list(records)
        for index, result in zip(candidates, results):
            if isinstance(result, Exception):
                logger.warning(f"Enrichment failed for {records[index].id}: {result}")
                metrics.errors += 1
                if records[index].source_provider == DataProvider.PROVIDER_B.value:
                    enriched[index] = records[index]
                else:
                    enriched[index] = replace(records[index], has_image=False)
            else:
                metrics.enriched += 1
                enriched[index] = result

        logger.debug(f"Enrichment: {metrics.enriched}/{len(candidates)} succeeded")
        return enriched

    async def _enrich_guarded(self, record: EnrichedRecord) -> EnrichedRecord:
        try:
            return await self.enrichment_limiter.run(self._enrich_one, record)
        except CallTimeout as e:
            raise ProviderUnavailable(record.source_provider or "unknown", str(e)) from e

    async def _enrich_one(self, record: EnrichedRecord) -> EnrichedRecord:
        started = time.perf_counter()

        if record.source_provider == DataProvider.PROVIDER_B.value:
            detail = await self._fetch_detail(record.identifier)
            return replace(
                record,
                detail=detail,
                processing_time_ms=record.processing_time_ms + _elapsed_ms(started),
            )

        urls = await self._fetch_image_urls(record.identifier)
        if not urls:
            return replace(
                record,
                has_image=bool(record.primary_image),
                processing_time_ms=record.processing_time_ms + _elapsed_ms(started),
            )
        return replace(
            record,
            primary_image=urls[0],
            image_set=tuple(urls),
            has_image=True,
            processing_time_ms=record.processing_time_ms + _elapsed_ms(started),
        )

    async def _fetch_image_urls(self, identifier: str) -> List[str]:
        async def fetch():
            images = await self.listing_adapter.fetch_images(identifier)
            return [image.url for image in images if image.url]

        if self.cache is None:
            return await fetch()

        key = identifier_key(self.cache.prefix, DataProvider.PROVIDER_A.value, "images", identifier)
        cost = self.config.routing.call_cost(DataProvider.PROVIDER_A.value, 'images')
        return await self.cache.get_or_fetch(key, fetch, CacheCategory.IMAGES, cost) or []

    async def _fetch_detail(self, identifier: str) -> Dict[str, Any]:
        async def fetch():
            detail = await self.detail_adapter.enrich(identifier)
            return detail.to_dict()

        if self.cache is None:
            return await fetch()

        key = identifier_key(self.cache.prefix, DataProvider.PROVIDER_B.value, "detail", identifier)
        cost = self.config.routing.call_cost(DataProvider.PROVIDER_B.value, 'comprehensive')
        return await self.cache.get_or_fetch(key, fetch, CacheCategory.PROPERTY_DETAIL, cost)

    def get_limiter_status(self) -> Dict[str, Any]:
        return {
            'address': self.address_limiter.get_status(),
            'enrichment': self.enrichment_limiter.get_status(),
        }


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
