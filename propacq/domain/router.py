"""Data Source Router - picks the provider strategy for a request.

Routing is a pure decision over the request, the caller's preferences and
fixed cost/quality tables. It never performs I/O. Malformed tables produce
a fixed safe default route instead of an error.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from numbers import Number
from typing import Any, Dict, List, Optional

from propacq.config.settings import RoutingConfig, get_config
from propacq.domain.classifier import (
    PatternSearchClassifier,
    SearchAnalysis,
    SearchClassifier,
    SearchType,
)
from propacq.domain.models import SearchRequest
from propacq.utils.logger import get_logger

logger = get_logger(__name__)

PROVIDER_A = "provider_a"
PROVIDER_B = "provider_b"


class RoutingStrategy(Enum):
    """Which provider(s) satisfy a request."""
    PROVIDER_A_PRIMARY = "provider_a_primary"
    PROVIDER_B_PRIMARY = "provider_b_primary"
    PARALLEL = "parallel"


class RouterMisconfiguration(Exception):
    """Cost or quality tables are missing or malformed."""


@dataclass(frozen=True)
class RoutingPreferences:
    """Caller preferences; at most one priority flag is honoured, speed first."""
    prioritize_speed: bool = False
    prioritize_cost: bool = False
    prioritize_quality: bool = False
    max_cost: Optional[float] = None


@dataclass
class StrategyProfile:
    """Cost/quality/speed profile of one strategy."""
    strategy: RoutingStrategy
    cost: float
    quality: float
    speed: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy.value,
            'cost': self.cost,
            'quality': self.quality,
            'speed': self.speed,
            'description': self.description,
        }


@dataclass
class RoutingDecision:
    """Chosen strategy with its estimated cost and quality."""
    strategy: RoutingStrategy
    estimated_cost: float
    quality_score: float
    reasoning: List[str] = field(default_factory=list)
    confidence: float = 0.5
    alternatives: List[StrategyProfile] = field(default_factory=list)
    search_type: Optional[SearchType] = None
    is_default: bool = False

    @property
    def uses_provider_a(self) -> bool:
        return self.strategy in (RoutingStrategy.PROVIDER_A_PRIMARY, RoutingStrategy.PARALLEL)

    @property
    def uses_provider_b(self) -> bool:
        return self.strategy in (RoutingStrategy.PROVIDER_B_PRIMARY, RoutingStrategy.PARALLEL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy.value,
            'estimated_cost': self.estimated_cost,
            'quality_score': self.quality_score,
            'reasoning': list(self.reasoning),
            'confidence': self.confidence,
            'alternatives': [a.to_dict() for a in self.alternatives],
            'search_type': self.search_type.value if self.search_type else None,
            'is_default': self.is_default,
        }


@dataclass
class CostAnalysis:
    provider_a: float
    provider_b: float
    expected_records: int

    @property
    def parallel(self) -> float:
        return self.provider_a + self.provider_b

    @property
    def cheapest_single(self) -> RoutingStrategy:
        if self.provider_a <= self.provider_b:
            return RoutingStrategy.PROVIDER_A_PRIMARY
        return RoutingStrategy.PROVIDER_B_PRIMARY


@dataclass
class QualityAnalysis:
    provider_a: float
    provider_b: float

    @property
    def parallel(self) -> float:
        return max(self.provider_a, self.provider_b)

    @property
    def best_single(self) -> RoutingStrategy:
        if self.provider_a >= self.provider_b:
            return RoutingStrategy.PROVIDER_A_PRIMARY
        return RoutingStrategy.PROVIDER_B_PRIMARY


_DESCRIPTIONS = {
    RoutingStrategy.PROVIDER_A_PRIMARY: ('fast', 'Listing provider first: fast results, broad coverage'),
    RoutingStrategy.PROVIDER_B_PRIMARY: ('medium', 'Detail provider first: valuation and history depth'),
    RoutingStrategy.PARALLEL: ('fast', 'Both providers concurrently for maximum coverage'),
}


class DataSourceRouter:
    """Maps a search request plus preferences to a routing decision."""

    def __init__(
        self,
        routing_config: Optional[RoutingConfig] = None,
        classifier: Optional[SearchClassifier] = None,
    ):
        """Initialize the router.

        Args:
            routing_config: Cost/quality tables (defaults to global config)
            classifier: Search classifier (defaults to regex heuristics)
        """
        self.tables = routing_config or get_config().routing
        self.classifier = classifier or PatternSearchClassifier()

        self.routing_stats = {
            'total_routes': 0,
            RoutingStrategy.PROVIDER_A_PRIMARY.value: 0,
            RoutingStrategy.PROVIDER_B_PRIMARY.value: 0,
            RoutingStrategy.PARALLEL.value: 0,
            'default_routes': 0,
            'avg_decision_ms': 0.0,
        }

    def route(
        self,
        request: SearchRequest,
        preferences: Optional[RoutingPreferences] = None,
    ) -> RoutingDecision:
        """Choose the routing strategy for a request.

        Args:
            request: Search request
            preferences: Routing preferences (defaults to none set)

        Returns:
            RoutingDecision with the two non-selected alternatives
        """
        started = time.perf_counter()
        preferences = preferences or RoutingPreferences()

        try:
            self._validate_tables()
            analysis = self.classifier.classify(request)
            costs = self.analyze_costs(request, analysis)
            quality = self.analyze_quality(request.required_data_types)
            decision = self._decide(analysis, costs, quality, preferences)
        except RouterMisconfiguration as e:
            logger.error(f"Routing tables unusable, using default route: {e}")
            decision = self.default_route()

        self._record(decision, (time.perf_counter() - started) * 1000)
        logger.debug(
            f"Routing decision: {decision.strategy.value} "
            f"(${decision.estimated_cost:.3f}, quality {decision.quality_score:.1f}/10)"
        )
        return decision

    def _validate_tables(self):
        costs = getattr(self.tables, 'costs', None)
        quality = getattr(self.tables, 'quality', None)
        if not isinstance(costs, dict) or not isinstance(quality, dict):
            raise RouterMisconfiguration("cost and quality tables must be mappings")

        required_costs = {
            PROVIDER_A: ('search', 'per_record', 'images'),
            PROVIDER_B: ('search', 'comprehensive'),
        }
        for provider, fields in required_costs.items():
            table = costs.get(provider)
            if not isinstance(table, dict):
                raise RouterMisconfiguration(f"missing cost table for {provider}")
            for name in fields:
                if not _non_negative(table.get(name)):
                    raise RouterMisconfiguration(f"bad cost {provider}.{name}: {table.get(name)!r}")

        for provider in (PROVIDER_A, PROVIDER_B):
            table = quality.get(provider)
            if not isinstance(table, dict) or not table:
                raise RouterMisconfiguration(f"missing quality table for {provider}")
            if not all(_non_negative(v) for v in table.values()):
                raise RouterMisconfiguration(f"non-numeric quality rating for {provider}")

        weights = getattr(self.tables, 'data_type_weights', None)
        if weights is not None:
            if not isinstance(weights, dict):
                raise RouterMisconfiguration("data type weights must be a mapping")
            bad = {k: v for k, v in weights.items() if not _non_negative(v)}
            if bad:
                raise RouterMisconfiguration(f"bad data type weights: {bad!r}")

        for name in ('base_record_estimate', 'min_record_estimate', 'max_record_estimate'):
            value = getattr(self.tables, name, None)
            if not _non_negative(value):
                raise RouterMisconfiguration(f"bad {name}: {value!r}")
        if self.tables.min_record_estimate > self.tables.max_record_estimate:
            raise RouterMisconfiguration("min_record_estimate exceeds max_record_estimate")

        default_types = getattr(self.tables, 'default_data_types', None)
        if isinstance(default_types, str) or not isinstance(default_types, (list, tuple)):
            raise RouterMisconfiguration(f"bad default_data_types: {default_types!r}")

    def estimate_record_count(self, request: SearchRequest) -> int:
        """Expected result-set size from the request's filters."""
        estimate = float(self.tables.base_record_estimate)

        if request.max_price is not None and request.max_price < 200_000:
            estimate *= 0.5
        if request.max_price is not None and request.max_price > 1_000_000:
            estimate *= 0.3
        if request.min_beds is not None and request.min_beds > 4:
            estimate *= 0.4
        if request.property_type and request.property_type != 'any':
            estimate *= 0.7

        return max(
            self.tables.min_record_estimate,
            min(self.tables.max_record_estimate, int(round(estimate))),
        )

    def analyze_costs(self, request: SearchRequest, analysis: SearchAnalysis) -> CostAnalysis:
        """USD cost of each single-provider strategy."""
        a = self.tables.costs[PROVIDER_A]
        b = self.tables.costs[PROVIDER_B]

        if analysis.search_type == SearchType.SPECIFIC_ADDRESS:
            expected = 1
            cost_b = b['comprehensive']
        else:
            expected = self.estimate_record_count(request)
            # No bulk discount on the detail provider
            cost_b = expected * b['search']

        cost_a = a['search'] + expected * a['per_record']
        return CostAnalysis(provider_a=cost_a, provider_b=cost_b, expected_records=expected)

    def analyze_quality(self, required_data_types) -> QualityAnalysis:
        """Weighted average of per-field ratings over the requested data types."""
        data_types = list(required_data_types) or list(self.tables.default_data_types)
        ratings_a = self.tables.quality[PROVIDER_A]
        ratings_b = self.tables.quality[PROVIDER_B]
        weights = self.tables.data_type_weights or {}

        total_a = total_b = total_weight = 0.0
        for data_type in data_types:
            weight = weights.get(data_type, 5)
            total_a += ratings_a.get(data_type, 5) * weight
            total_b += ratings_b.get(data_type, 5) * weight
            total_weight += weight

        if total_weight <= 0:
            return QualityAnalysis(provider_a=7.0, provider_b=7.0)
        return QualityAnalysis(
            provider_a=total_a / total_weight,
            provider_b=total_b / total_weight,
        )

    def _decide(
        self,
        analysis: SearchAnalysis,
        costs: CostAnalysis,
        quality: QualityAnalysis,
        preferences: RoutingPreferences,
    ) -> RoutingDecision:
        reasoning: List[str] = []
        is_address = analysis.search_type == SearchType.SPECIFIC_ADDRESS

        if preferences.prioritize_speed:
            if is_address:
                strategy = RoutingStrategy.PARALLEL
                reasoning.append('Parallel execution for speed on address search')
            else:
                strategy = RoutingStrategy.PROVIDER_A_PRIMARY
                reasoning.append('Listing provider primary for fastest area search')
        elif preferences.prioritize_cost:
            strategy = costs.cheapest_single
            reasoning.append(f'{strategy.value} is the cheaper single provider')
        elif preferences.prioritize_quality:
            strategy = quality.best_single
            reasoning.append(f'{strategy.value} has the higher weighted quality')
        elif is_address:
            strategy = RoutingStrategy.PARALLEL
            reasoning.append('Parallel execution optimal for address-specific searches')
        elif analysis.search_type in (SearchType.AREA_SEARCH, SearchType.FILTERED_SEARCH):
            strategy = RoutingStrategy.PROVIDER_A_PRIMARY
            reasoning.append('Listing provider primary optimal for area/filtered searches')
        else:
            strategy = RoutingStrategy.PROVIDER_A_PRIMARY
            reasoning.append('Listing provider primary as safe default')

        profiles = self._profiles(costs, quality)
        chosen = profiles[strategy]

        if preferences.max_cost is not None and chosen.cost > preferences.max_cost:
            cheapest = costs.cheapest_single
            reasoning.append(
                f'Cost limit ${preferences.max_cost:.2f} exceeded by {strategy.value} '
                f'(${chosen.cost:.3f}); downgraded to {cheapest.value}'
            )
            strategy = cheapest
            chosen = profiles[strategy]
            if chosen.cost > preferences.max_cost:
                reasoning.append(
                    f'Warning: all options exceed cost limit of ${preferences.max_cost:.2f}'
                )

        return RoutingDecision(
            strategy=strategy,
            estimated_cost=chosen.cost,
            quality_score=round(chosen.quality, 2),
            reasoning=reasoning,
            confidence=analysis.confidence,
            alternatives=[p for s, p in profiles.items() if s != strategy],
            search_type=analysis.search_type,
        )

    def _profiles(self, costs: CostAnalysis, quality: QualityAnalysis) -> Dict[RoutingStrategy, StrategyProfile]:
        values = {
            RoutingStrategy.PROVIDER_A_PRIMARY: (costs.provider_a, quality.provider_a),
            RoutingStrategy.PROVIDER_B_PRIMARY: (costs.provider_b, quality.provider_b),
            RoutingStrategy.PARALLEL: (costs.parallel, quality.parallel),
        }
        profiles = {}
        for strategy, (cost, score) in values.items():
            speed, description = _DESCRIPTIONS[strategy]
            profiles[strategy] = StrategyProfile(
                strategy=strategy,
                cost=cost,
                quality=round(score, 2),
                speed=speed,
                description=description,
            )
        return profiles

    def default_route(self) -> RoutingDecision:
        """Fixed safe route used when the tables cannot be trusted."""
        return RoutingDecision(
            strategy=RoutingStrategy.PROVIDER_A_PRIMARY,
            estimated_cost=0.10,
            quality_score=7.0,
            reasoning=['Default safe route due to routing table error'],
            confidence=0.5,
            is_default=True,
        )

    def _record(self, decision: RoutingDecision, elapsed_ms: float):
        stats = self.routing_stats
        stats['total_routes'] += 1
        stats[decision.strategy.value] += 1
        if decision.is_default:
            stats['default_routes'] += 1
        n = stats['total_routes']
        stats['avg_decision_ms'] = (stats['avg_decision_ms'] * (n - 1) + elapsed_ms) / n

    def get_routing_stats(self) -> Dict[str, Any]:
        """Distribution of routing decisions so far."""
        stats = self.routing_stats
        total = stats['total_routes']
        distribution = {}
        for strategy in RoutingStrategy:
            count = stats[strategy.value]
            distribution[strategy.value] = {
                'count': count,
                'percentage': round(count / total * 100, 1) if total else 0.0,
            }
        return {
            'total_routes': total,
            'default_routes': stats['default_routes'],
            'distribution': distribution,
            'avg_decision_ms': round(stats['avg_decision_ms'], 3),
        }


def _non_negative(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool) and value >= 0
