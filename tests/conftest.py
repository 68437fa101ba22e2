"""Shared fixtures for propacq tests."""

import pytest

from propacq.config.settings import (
    BatchConfig,
    CacheConfig,
    Config,
    ProviderConfig,
    RoutingConfig,
    SystemConfig,
    reset_config,
)


def build_config(tmp_path, call_timeout=1.0, **batch_overrides):
    """Explicit configuration that never reads the environment."""
    return Config(
        providers=ProviderConfig(
            provider_a_key="test-key-a",
            provider_b_key="test-key-b",
            call_timeout=call_timeout,
        ),
        routing=RoutingConfig(),
        cache=CacheConfig(cache_dir=tmp_path / "cache"),
        batch=BatchConfig(**batch_overrides),
        system=SystemConfig(project_root=tmp_path),
    )


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test sees a fresh configuration singleton."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path):
    """Test configuration with short provider timeouts."""
    return build_config(tmp_path)


@pytest.fixture
def make_config(tmp_path):
    """Factory for configurations with custom timeouts or batch limits."""
    def factory(call_timeout=1.0, **batch_overrides):
        return build_config(tmp_path, call_timeout=call_timeout, **batch_overrides)
    return factory
