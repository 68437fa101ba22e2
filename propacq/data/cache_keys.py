"""
Cache key strategies
One physical property can be addressed several ways; each strategy derives
one key form from a PropertyLocator, or nothing when its inputs are missing.
"""

import hashlib
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

STREET_TYPE_PATTERN = re.compile(
    r"\b(street|st|avenue|ave|road|rd|drive|dr|lane|ln|court|ct|"
    r"boulevard|blvd|way|place|pl|circle|cir|parkway|pkwy|terrace|ter)\b\.?"
)
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[.,#]")


def collapse(value: Optional[Any]) -> str:
    """Lower-case, trim and collapse internal whitespace"""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value).strip().lower())


def digest(*parts: Any) -> str:
    """Short stable hash of the given parts"""
    raw = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.md5(raw.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class PropertyLocator:
    """Everything known about where a property is"""
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_address(self) -> bool:
        return bool(collapse(self.address))

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def normalized(self) -> Dict[str, str]:
        return {
            'address': collapse(self.address),
            'city': collapse(self.city),
            'state': collapse(self.state),
            'zip': collapse(self.zip_code),
        }


class KeyStrategy(ABC):
    """Derives one key form for a locator"""

    name: str = ""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def _key(self, provider: str, body: str) -> str:
        return f"{self.prefix}:{provider}:{self.name}:{body}"

    @abstractmethod
    def derive(self, provider: str, locator: PropertyLocator) -> Optional[str]:
        """Return the key, or None when this form cannot be built"""


class ExactAddressKey(KeyStrategy):
    """Full normalised address + city + state + zip"""

    name = "addr"

    def derive(self, provider: str, locator: PropertyLocator) -> Optional[str]:
        if not locator.has_address:
            return None
        n = locator.normalized()
        return self._key(provider, digest(n['address'], n['city'], n['state'], n['zip']))


class RoundedCoordinateKey(KeyStrategy):
    """Lat/lng rounded into ~11m buckets at the default precision"""

    name = "coord"

    def __init__(self, prefix: str, precision: int = 4):
        super().__init__(prefix)
        self.precision = precision

    def derive(self, provider: str, locator: PropertyLocator) -> Optional[str]:
        if not locator.has_coordinates:
            return None
        lat = round(float(locator.latitude), self.precision)
        lng = round(float(locator.longitude), self.precision)
        # -0.0 and 0.0 must share a bucket
        lat, lng = lat + 0.0, lng + 0.0
        return self._key(provider, f"{lat:.{self.precision}f}:{lng:.{self.precision}f}")


class FuzzyAddressKey(KeyStrategy):
    """Street-type tokens and punctuation stripped, zip ignored"""

    name = "partial"

    @staticmethod
    def simplify(address: str) -> str:
        text = _PUNCTUATION.sub(" ", collapse(address))
        text = STREET_TYPE_PATTERN.sub("", text)
        return _WHITESPACE.sub(" ", text).strip()

    def derive(self, provider: str, locator: PropertyLocator) -> Optional[str]:
        if not locator.has_address:
            return None
        simplified = self.simplify(locator.address)
        if not simplified:
            return None
        n = locator.normalized()
        return self._key(provider, digest(simplified, n['city'], n['state']))


def default_strategies(prefix: str, precision: int = 4) -> List[KeyStrategy]:
    """Lookup order: exact address, rounded coordinates, fuzzy address"""
    return [
        ExactAddressKey(prefix),
        RoundedCoordinateKey(prefix, precision),
        FuzzyAddressKey(prefix),
    ]


def normalize_parameters(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop empty values, lower-case strings and sort lists for stable keys"""
    normalized = {}
    for key in sorted(params):
        value = params[key]
        if value is None or value == "" or value == [] or value == ():
            continue
        if isinstance(value, str):
            normalized[key] = collapse(value)
        elif isinstance(value, (list, tuple)):
            normalized[key] = sorted(str(v) for v in value)
        elif isinstance(value, dict):
            normalized[key] = normalize_parameters(value)
        else:
            normalized[key] = value
    return normalized


def search_key(prefix: str, provider: str, params: Dict[str, Any]) -> str:
    """Key for a search result set"""
    return f"{prefix}:{provider}:search:{digest(normalize_parameters(params))}"


def identifier_key(prefix: str, provider: str, kind: str, identifier: str) -> str:
    """Key for per-identifier payloads such as images or details"""
    return f"{prefix}:{provider}:{kind}:{identifier}"
