"""Search classification.

Maps a request to a search type with default data requirements and a
confidence value. The router only depends on the SearchClassifier
interface, so the pattern table can be replaced without touching routing.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Pattern, Sequence

from propacq.domain.models import SearchRequest


class SearchType(Enum):
    """Request classes the router distinguishes."""
    SPECIFIC_ADDRESS = "specific_address"
    AREA_SEARCH = "area_search"
    FILTERED_SEARCH = "filtered_search"
    GENERAL_SEARCH = "general_search"


@dataclass
class SearchAnalysis:
    """Classification result."""
    search_type: SearchType
    confidence: float
    data_requirements: List[str] = field(default_factory=list)
    scope: str = "multiple_properties"


DEFAULT_ADDRESS_PATTERNS = (
    re.compile(
        r"\d+\s+[A-Za-z\s]+\b(st|street|ave|avenue|dr|drive|rd|road|ct|court|"
        r"ln|lane|way|blvd|boulevard|pl|place|pkwy|parkway|cir|circle)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^\d+\s+[A-Za-z\s]+,\s*[A-Za-z\s]+,\s*[A-Z]{2}\b", re.IGNORECASE),
)

DEFAULT_AREA_PATTERNS = (
    re.compile(r"\bin\s+(houston|dallas|austin|san antonio)\b", re.IGNORECASE),
    re.compile(r"\b(houses?|homes?)\s+in\s+\w+", re.IGNORECASE),
    re.compile(r"\bpropert(y|ies)\s+in\s+\w+", re.IGNORECASE),
)


class SearchClassifier(ABC):
    """Strategy interface: classify(request) -> SearchAnalysis."""

    @abstractmethod
    def classify(self, request: SearchRequest) -> SearchAnalysis:
        ...


class PatternSearchClassifier(SearchClassifier):
    """Regex heuristics over the request fields and free-text query."""

    def __init__(
        self,
        address_patterns: Optional[Sequence[Pattern]] = None,
        area_patterns: Optional[Sequence[Pattern]] = None,
    ):
        self.address_patterns = tuple(address_patterns or DEFAULT_ADDRESS_PATTERNS)
        self.area_patterns = tuple(area_patterns or DEFAULT_AREA_PATTERNS)

    def is_specific_address(self, text: Optional[str]) -> bool:
        if not text:
            return False
        text = text.strip()
        return any(p.search(text) for p in self.address_patterns)

    def is_area_search(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(p.search(text) for p in self.area_patterns)

    def classify(self, request: SearchRequest) -> SearchAnalysis:
        if request.address or self.is_specific_address(request.raw_query):
            return SearchAnalysis(
                search_type=SearchType.SPECIFIC_ADDRESS,
                confidence=0.9,
                data_requirements=['detailed_info', 'valuation', 'history'],
                scope='single_property',
            )

        if request.city or self.is_area_search(request.raw_query):
            return SearchAnalysis(
                search_type=SearchType.AREA_SEARCH,
                confidence=0.8,
                data_requirements=['listings', 'images', 'basic_info'],
            )

        if request.has_filters:
            return SearchAnalysis(
                search_type=SearchType.FILTERED_SEARCH,
                confidence=0.7,
                data_requirements=['listings', 'images', 'filtering'],
            )

        return SearchAnalysis(
            search_type=SearchType.GENERAL_SEARCH,
            confidence=0.5,
            data_requirements=['listings', 'images'],
        )
