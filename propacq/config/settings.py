"""
Configuration management for propacq
Loads environment variables and provides centralized settings
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import logging

# Load environment variables
env_path = Path(__file__).parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


class ConfigurationError(Exception):
    """Raised when configuration is unusable at construction time"""


def _default_costs() -> Dict[str, Dict[str, float]]:
    return {
        'provider_a': {
            'search': 0.02,
            'images': 0.01,
            'details': 0.03,
            'per_record': 0.005,
        },
        'provider_b': {
            'search': 0.50,
            'comprehensive': 2.00,
            'intelligence': 1.00,
        },
    }


def _default_quality() -> Dict[str, Dict[str, float]]:
    return {
        'provider_a': {
            'listings': 9,
            'images': 10,
            'prices': 8,
            'details': 7,
            'history': 6,
        },
        'provider_b': {
            'listings': 6,
            'images': 3,
            'prices': 9,
            'details': 10,
            'history': 10,
            'valuation': 10,
        },
    }


def _default_weights() -> Dict[str, float]:
    return {
        'listings': 10,
        'images': 8,
        'prices': 9,
        'details': 7,
        'history': 6,
        'valuation': 8,
    }


@dataclass
class ProviderConfig:
    """Provider endpoints and keys"""
    provider_a_key: str
    provider_b_key: str
    provider_a_url: str = "https://zillow-com1.p.rapidapi.com"
    provider_a_host: str = "zillow-com1.p.rapidapi.com"
    provider_b_url: str = "https://api.gateway.attomdata.com/propertyapi/v1.0.0"

    # Seconds
    http_timeout: float = 30.0
    call_timeout: float = 10.0


@dataclass
class RoutingConfig:
    """Cost and quality tables used by the data source router"""
    costs: Dict[str, Dict[str, float]] = field(default_factory=_default_costs)
    quality: Dict[str, Dict[str, float]] = field(default_factory=_default_quality)
    data_type_weights: Dict[str, float] = field(default_factory=_default_weights)
    default_data_types: tuple = ('listings', 'images', 'prices')
    base_record_estimate: int = 20
    min_record_estimate: int = 5
    max_record_estimate: int = 50

    def call_cost(self, provider: str, operation: str) -> Optional[float]:
        """USD cost of one provider call, or None when the table has no usable entry"""
        table = self.costs.get(provider) if isinstance(self.costs, dict) else None
        value = table.get(operation) if isinstance(table, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return None
        return float(value)


@dataclass
class CacheConfig:
    """Cache backend and TTL configuration"""
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "propacq"
    coordinate_precision: int = 4  # ~11m buckets

    # Per-category TTL overrides in seconds, keyed by category value
    ttl_overrides: Dict[str, int] = field(default_factory=dict)
    cache_dir: Optional[Path] = None


@dataclass
class BatchConfig:
    """Batch processing limits"""
    address_concurrency: int = 10
    enrichment_concurrency: int = 8
    home_city: str = "Houston"
    home_state: str = "TX"
    warm_delay_seconds: float = 1.0


@dataclass
class SystemConfig:
    """System-level configuration"""
    log_level: str = "INFO"
    log_to_file: bool = False

    # Paths
    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent.parent)
    data_dir: Path = field(init=False)
    cache_dir: Path = field(init=False)
    logs_dir: Path = field(init=False)

    def __post_init__(self):
        self.data_dir = self.project_root / "data"
        self.cache_dir = self.data_dir / "cache"
        self.logs_dir = self.project_root / "logs"


@dataclass
class Config:
    """Main configuration container"""
    providers: ProviderConfig
    routing: RoutingConfig
    cache: CacheConfig
    batch: BatchConfig
    system: SystemConfig

    # Runtime overrides
    _overrides: Dict[str, Any] = field(default_factory=dict)

    def override(self, key: str, value: Any):
        """Override a configuration value at runtime"""
        self._overrides[key] = value

    def get(self, key: str, default=None):
        """Get configuration value with override support"""
        if key in self._overrides:
            return self._overrides[key]

        # Navigate nested attributes
        parts = key.split('.')
        obj = self
        for part in parts:
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                return default
        return obj


def _positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {value}")
    return value


def _ttl_overrides_from_env() -> Dict[str, int]:
    """Read CACHE_TTL_<CATEGORY> variables"""
    overrides = {}
    for name, value in os.environ.items():
        if name.startswith("CACHE_TTL_") and value.strip():
            try:
                overrides[name[len("CACHE_TTL_"):].lower()] = int(value)
            except ValueError as e:
                raise ConfigurationError(f"{name} must be seconds, got {value!r}") from e
    return overrides


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """Get or create the configuration singleton"""
    global _config_instance

    if _config_instance is None:
        provider_config = ProviderConfig(
            provider_a_key=os.getenv("PROVIDER_A_API_KEY", ""),
            provider_b_key=os.getenv("PROVIDER_B_API_KEY", ""),
            provider_a_url=os.getenv("PROVIDER_A_URL", "https://zillow-com1.p.rapidapi.com"),
            provider_a_host=os.getenv("PROVIDER_A_HOST", "zillow-com1.p.rapidapi.com"),
            provider_b_url=os.getenv(
                "PROVIDER_B_URL", "https://api.gateway.attomdata.com/propertyapi/v1.0.0"
            ),
            http_timeout=float(os.getenv("PROVIDER_HTTP_TIMEOUT", "30")),
            call_timeout=float(os.getenv("PROVIDER_CALL_TIMEOUT", "10")),
        )

        cache_config = CacheConfig(
            backend=os.getenv("CACHE_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            key_prefix=os.getenv("CACHE_KEY_PREFIX", "propacq"),
            ttl_overrides=_ttl_overrides_from_env(),
        )

        batch_config = BatchConfig(
            address_concurrency=_positive_int("ADDRESS_CONCURRENCY", "10"),
            enrichment_concurrency=_positive_int("ENRICHMENT_CONCURRENCY", "8"),
            home_city=os.getenv("HOME_CITY", "Houston"),
            home_state=os.getenv("HOME_STATE", "TX"),
        )

        system_config = SystemConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_to_file=os.getenv("LOG_TO_FILE", "false").lower() in ("1", "true", "yes"),
        )

        if cache_config.backend not in ("memory", "file", "redis"):
            raise ConfigurationError(f"Unknown CACHE_BACKEND: {cache_config.backend}")

        _config_instance = Config(
            providers=provider_config,
            routing=RoutingConfig(),
            cache=cache_config,
            batch=batch_config,
            system=system_config,
        )

        # Validate critical settings
        if not provider_config.provider_a_key:
            logging.warning("PROVIDER_A_API_KEY not set - listing searches will fail")
        if not provider_config.provider_b_key:
            logging.warning("PROVIDER_B_API_KEY not set - detail lookups will fail")

    return _config_instance


def reset_config():
    """Reset the configuration singleton (mainly for testing)"""
    global _config_instance
    _config_instance = None
