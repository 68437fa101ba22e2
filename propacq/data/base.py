"""
Base classes for provider adapters
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


class DataProvider(Enum):
    """Available property data providers"""
    PROVIDER_A = "provider_a"  # fast, cheap, listing-oriented
    PROVIDER_B = "provider_b"  # slow, expensive, detail-rich


class ProviderError(Exception):
    """Base error for a failed provider call"""
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class ProviderUnavailable(ProviderError):
    """Timeout, transport failure or 5xx from a provider"""


class RateLimited(ProviderError):
    """Provider answered 429"""


@dataclass
class RawRecord:
    """One property as returned by a provider, normalised at the adapter boundary"""
    provider: str
    identifier: Optional[str] = None
    address: Optional[str] = None
    price: Optional[float] = None
    beds: Optional[int] = None
    baths: Optional[float] = None
    sqft: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'identifier': self.identifier,
            'address': self.address,
            'price': self.price,
            'beds': self.beds,
            'baths': self.baths,
            'sqft': self.sqft,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'image_url': self.image_url,
            'extra': self.extra,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawRecord':
        return cls(**data)


@dataclass
class Image:
    """Property image reference"""
    url: str
    identifier: Optional[str] = None
    caption: Optional[str] = None


@dataclass
class DetailRecord:
    """Detail payload from the detail-rich provider"""
    identifier: str
    valuation: Optional[float] = None
    tax_assessment: Optional[float] = None
    year_built: Optional[int] = None
    sale_history: List[Dict[str, Any]] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identifier': self.identifier,
            'valuation': self.valuation,
            'tax_assessment': self.tax_assessment,
            'year_built': self.year_built,
            'sale_history': self.sale_history,
            'details': self.details,
            'provider': self.provider,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetailRecord':
        return cls(**data)


def to_float(value: Any) -> Optional[float]:
    """Lenient numeric coercion for provider fields"""
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", "").replace("$", ""))
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    return int(number) if number is not None else None


def payload_list(provider: str, data: Any, key: str) -> List[Any]:
    """
    The list under `key` in a JSON object body

    A missing or null key is an empty result; any other shape means the
    provider answered with something unusable.
    """
    if not isinstance(data, dict):
        raise ProviderUnavailable(provider, f"malformed response body ({type(data).__name__})")
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProviderUnavailable(provider, f"malformed response: {key!r} is {type(value).__name__}")
    return value


class ProviderAdapter(ABC):
    """Base class for all provider adapters"""

    def __init__(self, provider: DataProvider):
        self.provider = provider
        self.is_connected = False

    @abstractmethod
    async def connect(self):
        """Open the HTTP client"""

    @abstractmethod
    async def disconnect(self):
        """Close the HTTP client"""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the adapter is usable"""


class ListingAdapter(ProviderAdapter):
    """Contract for the listing-oriented provider"""

    @abstractmethod
    async def search(self, criteria: Dict[str, Any]) -> List[RawRecord]:
        """Search listings by location criteria"""

    @abstractmethod
    async def fetch_images(self, identifier: str) -> List[Image]:
        """Fetch the image set for one listing"""


class DetailAdapter(ProviderAdapter):
    """Contract for the detail-rich provider"""

    @abstractmethod
    async def search(self, criteria: Dict[str, Any]) -> Optional[RawRecord]:
        """Look up a single property by address criteria"""

    @abstractmethod
    async def enrich(self, identifier: str) -> DetailRecord:
        """Fetch valuation, history and detail data for one property"""
