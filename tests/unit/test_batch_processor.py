"""Unit tests for address parsing, quality tiers and the batch processor."""

import asyncio
from dataclasses import FrozenInstanceError
import pytest
from unittest.mock import AsyncMock

from propacq.data.base import (
    DataProvider,
    DetailAdapter,
    DetailRecord,
    Image,
    ListingAdapter,
    ProviderUnavailable,
    RateLimited,
    RawRecord,
)
from propacq.data.cache import MemoryCacheStore
from propacq.data.cache_manager import PropertyCache
from propacq.domain.address import AddressParser
from propacq.domain.models import Address, DataQuality, EnrichedRecord
from propacq.domain.quality import assess_quality, field_checks
from propacq.orchestration.batch import BatchOptions, BatchProcessor


def listing_record(index, address="auto", **fields):
    """Listing-provider record with complete fields unless overridden."""
    if address == "auto":
        address = f"{index} Main St, Houston, TX {77000 + index % 100:05d}"
    values = dict(
        provider=DataProvider.PROVIDER_A.value,
        identifier=f"zp{index}",
        address=address,
        price=250000.0,
        beds=3,
        baths=2.0,
        sqft=1800,
        latitude=29.76,
        longitude=-95.37,
    )
    values.update(fields)
    return RawRecord(**values)


def listing_adapter(fail_ids=(), delay=0.0):
    """AsyncMock listing adapter whose image fetch fails for some identifiers."""
    adapter = AsyncMock(spec=ListingAdapter)
    adapter.provider = DataProvider.PROVIDER_A

    async def fetch_images(identifier):
        if delay:
            await asyncio.sleep(delay)
        if identifier in fail_ids:
            raise ProviderUnavailable("provider_a", "HTTP 503 on /images")
        return [
            Image(url=f"https://img.example.com/{identifier}/1.jpg", identifier=identifier),
            Image(url=f"https://img.example.com/{identifier}/2.jpg", identifier=identifier),
        ]

    adapter.fetch_images.side_effect = fetch_images
    return adapter


class TestAddressParser:
    """Test the cascading address parse."""

    @pytest.fixture
    def parser(self):
        return AddressParser("Houston", "TX")

    def test_full_address(self, parser):
        address = parser.parse("123 Main St, Houston, TX 77002")

        assert address.street == "123 Main St"
        assert address.city == "Houston"
        assert address.state == "TX"
        assert address.zip == "77002"
        assert address.one_line == "123 Main St, Houston, TX 77002"
        assert address.is_valid

    def test_zip_extension_dropped(self, parser):
        assert parser.parse("9 Elm Dr, Austin, TX 78701-1234").zip == "78701"

    def test_lower_case_state(self, parser):
        address = parser.parse("9 Elm Dr, Austin, tx 78701")
        assert address.state == "TX"

    def test_relaxed_state_zip(self, parser):
        address = parser.parse("9 Elm Dr, Austin, TX, 78701")
        assert (address.state, address.zip) == ("TX", "78701")

    def test_zip_only_uses_home_state(self, parser):
        address = parser.parse("9 Elm Dr, Austin, Texas 78701")
        assert address.state == "TX"
        assert address.zip == "78701"

    def test_two_part_address(self, parser):
        address = parser.parse("9 Elm Dr, Austin TX 78701")
        assert (address.city, address.state, address.zip) == ("Austin", "TX", "78701")

    def test_single_token_defaults_to_home_market(self, parser):
        address = parser.parse("123 Main St")

        assert address.city == "Houston"
        assert address.state == "TX"
        assert address.zip is None
        assert not address.is_valid

    def test_unparseable(self, parser):
        assert parser.parse(None) is None
        assert parser.parse("") is None
        assert parser.parse("undefined") is None
        assert parser.parse("Somewhere, Nowhere") is None
        assert parser.parse("1 Main St, Houston, unknown") is None

    def test_parsed_address_is_immutable(self, parser):
        address = parser.parse("123 Main St, Houston, TX 77002")
        with pytest.raises(FrozenInstanceError):
            address.street = "999 Elm St"
        assert address.street == "123 Main St"

    def test_synthetic_address(self, parser):
        assert parser.synthetic(None).one_line == "Address unavailable"
        assert parser.synthetic("  lot 4  ").one_line == "lot 4"
        assert not parser.synthetic("lot 4").is_valid


class TestQualityTiers:
    """Test the conjunctive/disjunctive quality hierarchy."""

    @pytest.fixture
    def address(self):
        return Address(
            one_line="1 Main St, Houston, TX 77002",
            street="1 Main St", city="Houston", state="TX", zip="77002",
        )

    def make(self, address, **fields):
        values = dict(
            id="p1", address=address, price=250000.0, beds=3, baths=2.0,
            coordinates=(29.76, -95.37), primary_image="https://img/1.jpg",
        )
        values.update(fields)
        return EnrichedRecord(**values)

    def test_excellent(self, address):
        assert assess_quality(self.make(address)) == DataQuality.EXCELLENT

    def test_good_without_image(self, address):
        assert assess_quality(self.make(address, primary_image=None)) == DataQuality.GOOD

    def test_partial_with_price_only(self, address):
        record = self.make(address, beds=None, baths=None, coordinates=None)
        assert assess_quality(record) == DataQuality.PARTIAL

    def test_partial_with_beds_and_baths_only(self, address):
        record = self.make(address, price=None, coordinates=None)
        assert assess_quality(record) == DataQuality.PARTIAL

    def test_poor_without_price_or_rooms(self, address):
        record = self.make(address, price=None, beds=3, baths=None)
        assert assess_quality(record) == DataQuality.POOR

    def test_poor_without_valid_address(self, address):
        no_zip = Address(one_line="1 Main St", street="1 Main St", city="Houston", state="TX")
        assert assess_quality(self.make(no_zip)) == DataQuality.POOR

    def test_zero_price_is_missing(self, address):
        assert field_checks(self.make(address, price=0))['has_price'] is False

    def test_monotonicity(self, address):
        """Each tier implies the field conditions of the tier below."""
        variants = [
            self.make(address),
            self.make(address, primary_image=None),
            self.make(address, coordinates=None),
            self.make(address, price=None),
            self.make(address, beds=None, price=None),
        ]
        for record in variants:
            checks = field_checks(record)
            tier = assess_quality(record)
            if tier == DataQuality.EXCELLENT:
                assert checks['has_image']
            if tier in (DataQuality.EXCELLENT, DataQuality.GOOD):
                assert checks['has_price'] and checks['has_beds_and_baths'] and checks['has_location']
            if tier != DataQuality.POOR:
                assert checks['has_valid_address']
                assert checks['has_price'] or checks['has_beds_and_baths']


class TestBatchProcessor:
    """Test the three-phase batch pipeline."""

    @pytest.mark.asyncio
    async def test_hundred_record_scenario(self, config):
        """70 parse, 8 enrichment failures: 8 errors, >= 30 poor, 100 out."""
        fail_ids = {f"zp{i}" for i in range(0, 16, 2)}
        raw = [listing_record(i) for i in range(70)]
        raw += [listing_record(i, address=None) for i in range(70, 100)]

        processor = BatchProcessor(listing_adapter(fail_ids), config=config)
        records, metrics = await processor.process_batch(raw)

        assert len(records) == 100
        assert metrics.errors == 8
        assert metrics.poor_count >= 30
        assert metrics.enrichment_candidates == 70
        assert metrics.enriched == 62
        assert metrics.quality_histogram == {
            'excellent': 62, 'good': 8, 'partial': 0, 'poor': 30,
        }

    @pytest.mark.asyncio
    async def test_order_preserved(self, config):
        """output[i] derives from input[i] whatever failed."""
        raw = [
            listing_record(i, address=None if i % 3 == 0 else "auto")
            for i in range(30)
        ]
        processor = BatchProcessor(listing_adapter({"zp4", "zp5"}), config=config)

        records, _ = await processor.process_batch(raw)

        assert [r.id for r in records] == [f"zp{i}" for i in range(30)]

    @pytest.mark.asyncio
    async def test_failed_enrichment_keeps_prior_fields(self, config):
        raw = [listing_record(1, image_url="https://img/original.jpg")]
        processor = BatchProcessor(listing_adapter({"zp1"}), config=config)

        records, metrics = await processor.process_batch(raw)
        record = records[0]

        assert record.has_image is False
        assert record.primary_image == "https://img/original.jpg"
        assert record.price == 250000.0
        assert metrics.errors == 1

    @pytest.mark.asyncio
    async def test_rate_limited_is_isolated(self, config):
        adapter = listing_adapter()
        adapter.fetch_images.side_effect = RateLimited("provider_a", "429")
        processor = BatchProcessor(adapter, config=config)

        records, metrics = await processor.process_batch([listing_record(i) for i in range(3)])

        assert metrics.errors == 3
        assert all(r.data_quality == DataQuality.GOOD for r in records)

    @pytest.mark.asyncio
    async def test_successful_enrichment_sets_images(self, config):
        processor = BatchProcessor(listing_adapter(), config=config)

        records, _ = await processor.process_batch([listing_record(7)])
        record = records[0]

        assert record.has_image
        assert record.primary_image == "https://img.example.com/zp7/1.jpg"
        assert len(record.image_set) == 2
        assert record.data_quality == DataQuality.EXCELLENT

    @pytest.mark.asyncio
    async def test_poor_records_skip_enrichment(self, config):
        adapter = listing_adapter()
        processor = BatchProcessor(adapter, config=config)

        records, metrics = await processor.process_batch([listing_record(1, address="")])

        adapter.fetch_images.assert_not_awaited()
        assert metrics.enrichment_candidates == 0
        assert records[0].address.one_line == "Address unavailable"
        assert records[0].data_quality == DataQuality.POOR

    @pytest.mark.asyncio
    async def test_records_without_identifier_skip_enrichment(self, config):
        adapter = listing_adapter()
        processor = BatchProcessor(adapter, config=config)

        records, _ = await processor.process_batch([listing_record(1, identifier=None)])

        adapter.fetch_images.assert_not_awaited()
        assert records[0].id == "property_0"

    @pytest.mark.asyncio
    async def test_phase_one_failure_yields_fallback(self, config):
        """A malformed raw record is kept as a poor fallback and counted."""
        raw = [listing_record(0), {"provider": "provider_a", "identifier": "bad", "surprise": 1}]
        processor = BatchProcessor(listing_adapter(), config=config)

        records, metrics = await processor.process_batch(raw)

        assert len(records) == 2
        assert records[1].fallback
        assert records[1].id == "bad"
        assert records[1].data_quality == DataQuality.POOR
        assert metrics.errors == 1

    @pytest.mark.asyncio
    async def test_dict_records_accepted(self, config):
        processor = BatchProcessor(listing_adapter(), config=config)
        records, metrics = await processor.process_batch([listing_record(3).to_dict()])

        assert records[0].data_quality == DataQuality.EXCELLENT
        assert metrics.errors == 0

    @pytest.mark.asyncio
    async def test_call_timeout_counts_as_failure(self, make_config):
        config = make_config(call_timeout=0.05)
        processor = BatchProcessor(listing_adapter(delay=1.0), config=config)

        records, metrics = await processor.process_batch([listing_record(1)])

        assert metrics.errors == 1
        assert records[0].has_image is False
        assert processor.enrichment_limiter.stats.timed_out == 1

    @pytest.mark.asyncio
    async def test_enrichment_concurrency_bounded(self, make_config):
        config = make_config(enrichment_concurrency=3)
        in_flight = 0
        peak = 0

        async def fetch_images(identifier):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return []

        adapter = listing_adapter()
        adapter.fetch_images.side_effect = fetch_images
        processor = BatchProcessor(adapter, config=config)

        await processor.process_batch([listing_record(i) for i in range(20)])

        assert peak <= 3
        assert processor.enrichment_limiter.stats.peak_in_flight <= 3
        assert processor.address_limiter.limit == 10

    @pytest.mark.asyncio
    async def test_images_disabled(self, config):
        adapter = listing_adapter()
        processor = BatchProcessor(adapter, config=config)

        records, _ = await processor.process_batch(
            [listing_record(1)], BatchOptions(include_images=False)
        )

        adapter.fetch_images.assert_not_awaited()
        assert records[0].data_quality == DataQuality.GOOD

    @pytest.mark.asyncio
    async def test_detail_enrichment(self, config):
        detail = AsyncMock(spec=DetailAdapter)
        detail.provider = DataProvider.PROVIDER_B
        detail.enrich.return_value = DetailRecord(
            identifier="attom1", valuation=310000.0, year_built=1998, provider="provider_b"
        )
        raw = [listing_record(1, provider="provider_b", identifier="attom1")]
        processor = BatchProcessor(listing_adapter(), detail, config=config)

        records, metrics = await processor.process_batch(raw, BatchOptions(include_details=True))

        detail.enrich.assert_awaited_once_with("attom1")
        assert records[0].detail['valuation'] == 310000.0
        assert metrics.enriched == 1

    @pytest.mark.asyncio
    async def test_failed_detail_enrichment_keeps_image(self, config):
        detail = AsyncMock(spec=DetailAdapter)
        detail.provider = DataProvider.PROVIDER_B
        detail.enrich.side_effect = ProviderUnavailable("provider_b", "HTTP 503 on /expandedprofile")
        raw = [listing_record(
            1, provider="provider_b", identifier="attom1", image_url="https://img.example.com/attom1.jpg"
        )]
        processor = BatchProcessor(listing_adapter(), detail, config=config)

        records, metrics = await processor.process_batch(raw, BatchOptions(include_details=True))

        assert records[0].has_image
        assert records[0].detail is None
        assert records[0].data_quality == DataQuality.EXCELLENT
        assert metrics.errors == 1

    @pytest.mark.asyncio
    async def test_detail_records_untouched_without_option(self, config):
        detail = AsyncMock(spec=DetailAdapter)
        raw = [listing_record(1, provider="provider_b", identifier="attom1")]
        processor = BatchProcessor(listing_adapter(), detail, config=config)

        await processor.process_batch(raw)

        detail.enrich.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_image_cache_avoids_refetch(self, config):
        adapter = listing_adapter()
        cache = PropertyCache(MemoryCacheStore(), config)
        processor = BatchProcessor(adapter, config=config, cache=cache)

        await processor.process_batch([listing_record(1), listing_record(2)])
        records, _ = await processor.process_batch([listing_record(1), listing_record(2)])

        assert adapter.fetch_images.await_count == 2
        assert all(r.has_image for r in records)
        assert cache.stats.hits == 2

    @pytest.mark.asyncio
    async def test_metrics(self, config):
        processor = BatchProcessor(listing_adapter(), config=config)

        _, metrics = await processor.process_batch([listing_record(i) for i in range(5)])
        data = metrics.to_dict()

        assert set(metrics.phase_timings) == {
            'address_normalization', 'enrichment', 'quality_assessment'
        }
        assert data['total_input'] == 5
        assert data['succeeded'] == 5
        assert data['throughput'] >= 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, config):
        processor = BatchProcessor(listing_adapter(), config=config)
        records, metrics = await processor.process_batch([])

        assert records == []
        assert metrics.total_input == 0
        assert metrics.errors == 0
