"""Domain layer - Routing and record logic for propacq.

This package contains:
- Search classification
- Provider routing
- Address parsing
- Data quality assessment
"""

from propacq.domain.models import (
    SearchRequest,
    Address,
    EnrichedRecord,
    BatchMetrics,
    DataQuality
)
from propacq.domain.classifier import (
    SearchClassifier,
    PatternSearchClassifier,
    SearchAnalysis,
    SearchType
)
from propacq.domain.router import (
    DataSourceRouter,
    RoutingDecision,
    RoutingPreferences,
    RoutingStrategy,
    StrategyProfile,
    RouterMisconfiguration
)
from propacq.domain.address import AddressParser
from propacq.domain.quality import assess_quality

__all__ = [
    # Models
    'SearchRequest',
    'Address',
    'EnrichedRecord',
    'BatchMetrics',
    'DataQuality',

    # Classification
    'SearchClassifier',
    'PatternSearchClassifier',
    'SearchAnalysis',
    'SearchType',

    # Routing
    'DataSourceRouter',
    'RoutingDecision',
    'RoutingPreferences',
    'RoutingStrategy',
    'StrategyProfile',
    'RouterMisconfiguration',

    # Records
    'AddressParser',
    'assess_quality'
]
