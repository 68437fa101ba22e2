"""Unit tests for configuration, logging and concurrency limiters."""

import asyncio
import logging
import pytest

from propacq.config.settings import (
    ConfigurationError,
    get_config,
    reset_config,
)
from propacq.utils.limiter import CallTimeout, ConcurrencyLimiter
from propacq.utils.logger import (
    ColoredFormatter,
    StructuredLogger,
    get_logger,
    log_async_performance,
    render_context,
    setup_logger,
)


class TestConfiguration:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("CACHE_BACKEND", "ADDRESS_CONCURRENCY", "ENRICHMENT_CONCURRENCY",
                     "PROVIDER_CALL_TIMEOUT", "HOME_CITY", "HOME_STATE"):
            monkeypatch.delenv(name, raising=False)

        config = get_config()

        assert config.cache.backend == "memory"
        assert config.batch.address_concurrency == 10
        assert config.batch.enrichment_concurrency == 8
        assert config.providers.call_timeout == 10.0
        assert config.batch.home_city == "Houston"
        assert config.routing.costs['provider_b']['comprehensive'] == 2.00

    def test_singleton(self):
        assert get_config() is get_config()
        first = get_config()
        reset_config()
        assert get_config() is not first

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "REDIS")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
        monkeypatch.setenv("ENRICHMENT_CONCURRENCY", "4")
        monkeypatch.setenv("PROVIDER_CALL_TIMEOUT", "2.5")
        monkeypatch.setenv("HOME_CITY", "Austin")
        monkeypatch.setenv("CACHE_TTL_LISTING", "120")

        config = get_config()

        assert config.cache.backend == "redis"
        assert config.cache.redis_url == "redis://cache:6379/2"
        assert config.batch.enrichment_concurrency == 4
        assert config.providers.call_timeout == 2.5
        assert config.batch.home_city == "Austin"
        assert config.cache.ttl_overrides['listing'] == 120

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("CACHE_BACKEND", "memcached")
        with pytest.raises(ConfigurationError):
            get_config()

    @pytest.mark.parametrize("value", ["0", "-2", "many"])
    def test_invalid_concurrency_rejected(self, monkeypatch, value):
        monkeypatch.setenv("ADDRESS_CONCURRENCY", value)
        with pytest.raises(ConfigurationError):
            get_config()

    def test_invalid_ttl_rejected(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_TAX", "a month")
        with pytest.raises(ConfigurationError):
            get_config()

    def test_runtime_override(self):
        config = get_config()
        config.override("batch.home_city", "Dallas")

        assert config.get("batch.home_city") == "Dallas"
        assert config.get("batch.home_state") == config.batch.home_state
        assert config.get("batch.nonexistent", "fallback") == "fallback"


class TestLogging:
    """Test logger setup and structured context."""

    def test_get_logger_is_cached(self):
        first = get_logger("propacq.tests.cached")
        assert isinstance(first, StructuredLogger)
        assert get_logger("propacq.tests.cached") is first

    def test_context_reaches_records(self, caplog):
        logger = setup_logger("propacq.tests.context", level="DEBUG", use_colors=False)
        logger.add_context(request_id="abc123")

        with caplog.at_level(logging.INFO, logger="propacq.tests.context"):
            logger.info("routing request")

        record = caplog.records[-1]
        assert record.getMessage() == "routing request"
        assert record.request_id == "abc123"

        logger.clear_context()
        assert logger.context == {}

    def test_bind_adds_context_without_mutating_parent(self, caplog):
        parent = setup_logger("propacq.tests.bind", level="DEBUG", use_colors=False)
        child = parent.bind(strategy="parallel", batch_size=4)

        with caplog.at_level(logging.INFO, logger="propacq.tests.bind"):
            child.info("acquired")

        record = caplog.records[-1]
        assert record.strategy == "parallel"
        assert record.context == " [batch_size=4 strategy=parallel]"
        assert parent.context == {}

    def test_context_rendered_on_console_line(self):
        logger = setup_logger("propacq.tests.render", level="INFO", use_colors=False)
        handler = logger.logger.handlers[0]
        record = logger.logger.makeRecord(
            "propacq.tests.render", logging.INFO, __file__, 1, "routed", None, None,
            extra={"context": render_context({"strategy": "provider_a_primary"})},
        )
        handler.filter(record)

        line = handler.format(record)

        assert line.endswith("routed [strategy=provider_a_primary]")
        assert render_context({}) == ""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "propacq.log"
        logger = setup_logger("propacq.tests.file", level="INFO", log_file=log_file, use_colors=False)

        logger.warning("cache degraded")
        for handler in logger.logger.handlers:
            handler.flush()

        assert "cache degraded" in log_file.read_text()

    def test_colored_formatter_restores_fields(self):
        formatter = ColoredFormatter("%(levelname)s %(name)s %(message)s")
        formatter.use_colors = True
        record = logging.LogRecord("propacq.x", logging.WARNING, __file__, 1, "hello", None, None)

        output = formatter.format(record)

        assert "hello" in output
        assert record.levelname == "WARNING"
        assert record.name == "propacq.x"

    @pytest.mark.asyncio
    async def test_async_performance_decorator(self, caplog):
        logger = setup_logger("propacq.tests.perf", level="DEBUG", use_colors=False)

        @log_async_performance(logger)
        async def work():
            return 42

        with caplog.at_level(logging.INFO, logger="propacq.tests.perf"):
            assert await work() == 42

        assert any("work completed in" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_slow_threshold_warns(self, caplog):
        logger = setup_logger("propacq.tests.slow", level="DEBUG", use_colors=False)

        @log_async_performance(logger, slow_ms=1)
        async def crawl():
            await asyncio.sleep(0.02)

        with caplog.at_level(logging.INFO, logger="propacq.tests.slow"):
            await crawl()

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "crawl slow" in record.getMessage()
        assert record.duration_ms >= 1

    @pytest.mark.asyncio
    async def test_failures_are_logged_and_raised(self, caplog):
        logger = setup_logger("propacq.tests.fail", level="DEBUG", use_colors=False)

        @log_async_performance(logger)
        async def explode():
            raise RuntimeError("provider gone")

        with caplog.at_level(logging.INFO, logger="propacq.tests.fail"):
            with pytest.raises(RuntimeError):
                await explode()

        assert "explode failed after" in caplog.records[-1].getMessage()


class TestConcurrencyLimiter:
    """Test bounded parallelism and per-call timeouts."""

    @pytest.mark.asyncio
    async def test_bounds_in_flight(self):
        limiter = ConcurrencyLimiter("test", 2)

        async def job(i):
            await asyncio.sleep(0.01)
            return i

        results = await asyncio.gather(*(limiter.run(job, i) for i in range(6)))

        assert results == list(range(6))
        assert limiter.stats.peak_in_flight == 2
        assert limiter.stats.completed == 6
        assert limiter.stats.in_flight == 0

    @pytest.mark.asyncio
    async def test_timeout(self):
        limiter = ConcurrencyLimiter("slow", 1, timeout=0.01)

        with pytest.raises(CallTimeout) as exc_info:
            await limiter.run(asyncio.sleep, 1)

        assert exc_info.value.limiter == "slow"
        assert limiter.stats.timed_out == 1
        assert limiter.stats.failed == 1

    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_default(self):
        limiter = ConcurrencyLimiter("slow", 1, timeout=0.01)
        assert await limiter.run(asyncio.sleep, 0.02, "done", timeout=1.0) == "done"

    @pytest.mark.asyncio
    async def test_errors_propagate_and_count(self):
        limiter = ConcurrencyLimiter("err", 1)

        async def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await limiter.run(boom)
        assert limiter.stats.failed == 1
        assert limiter.get_status()['failed'] == 1

    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter("none", 0)
