"""Domain records shared by the router, batch processor and coordinator."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DataQuality(Enum):
    """Field-completeness tiers, best first."""
    EXCELLENT = "excellent"
    GOOD = "good"
    PARTIAL = "partial"
    POOR = "poor"


@dataclass(frozen=True)
class SearchRequest:
    """Immutable acquisition request."""
    raw_query: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_beds: Optional[int] = None
    max_beds: Optional[int] = None
    property_type: Optional[str] = None
    required_data_types: Tuple[str, ...] = ()

    @property
    def has_filters(self) -> bool:
        return any(
            v is not None for v in (self.min_price, self.max_price, self.min_beds, self.max_beds)
        ) or bool(self.property_type and self.property_type != "any")

    def to_criteria(self) -> Dict[str, Any]:
        """Provider search criteria (query string included for free-text fallbacks)."""
        return {
            'query': self.raw_query,
            'city': self.city,
            'state': self.state,
            'address': self.address,
            'zip_code': self.zip_code,
            'min_price': self.min_price,
            'max_price': self.max_price,
            'min_beds': self.min_beds,
            'max_beds': self.max_beds,
            'property_type': self.property_type,
        }


@dataclass(frozen=True)
class Address:
    """Parsed postal address."""
    one_line: str
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.street) and bool(self.zip)


@dataclass(frozen=True)
class EnrichedRecord:
    """Normalised property produced once per raw record."""
    id: str
    address: Address
    price: Optional[float] = None
    beds: Optional[int] = None
    baths: Optional[float] = None
    sqft: Optional[int] = None
    coordinates: Optional[Tuple[float, float]] = None
    primary_image: Optional[str] = None
    image_set: Tuple[str, ...] = ()
    data_quality: DataQuality = DataQuality.POOR
    source_provider: Optional[str] = None
    processing_time_ms: float = 0.0
    has_image: bool = False
    identifier: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['data_quality'] = self.data_quality.value
        data['image_set'] = list(self.image_set)
        data['coordinates'] = list(self.coordinates) if self.coordinates else None
        return data


@dataclass
class BatchMetrics:
    """Accumulated timings and counts for one batch invocation."""
    total_input: int = 0
    succeeded: int = 0
    errors: int = 0
    enrichment_candidates: int = 0
    enriched: int = 0
    phase_timings: Dict[str, float] = field(default_factory=dict)
    total_time_ms: float = 0.0
    quality_histogram: Dict[str, int] = field(
        default_factory=lambda: {q.value: 0 for q in DataQuality}
    )

    @property
    def throughput(self) -> float:
        """Records per second."""
        if self.total_time_ms <= 0:
            return 0.0
        return self.total_input / (self.total_time_ms / 1000)

    @property
    def poor_count(self) -> int:
        return self.quality_histogram.get(DataQuality.POOR.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_input': self.total_input,
            'succeeded': self.succeeded,
            'errors': self.errors,
            'enrichment_candidates': self.enrichment_candidates,
            'enriched': self.enriched,
            'phase_timings': dict(self.phase_timings),
            'total_time_ms': round(self.total_time_ms, 2),
            'throughput': round(self.throughput, 2),
            'quality_histogram': dict(self.quality_histogram),
        }


def quality_counts(records: List[EnrichedRecord]) -> Dict[str, int]:
    counts = {q.value: 0 for q in DataQuality}
    for record in records:
        counts[record.data_quality.value] += 1
    return counts
