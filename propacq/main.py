"""
Main entry point for propacq
Provides CLI commands for routing, acquisition and cache maintenance
"""

import asyncio
import json
import click
from pathlib import Path

from propacq.config.settings import get_config
from propacq.utils.logger import get_logger
from propacq.data import (
    DetailProvider,
    ListingProvider,
    PropertyCache,
    PropertyLocator,
    create_cache_store
)
from propacq.domain import DataSourceRouter, RoutingPreferences, SearchRequest
from propacq.orchestration import AcquisitionCoordinator, BatchOptions

logger = get_logger(__name__)


def build_request(query, address, city, state, zip_code, min_price, max_price,
                  min_beds, max_beds, property_type, data_types):
    return SearchRequest(
        raw_query=query,
        address=address,
        city=city,
        state=state,
        zip_code=zip_code,
        min_price=min_price,
        max_price=max_price,
        min_beds=min_beds,
        max_beds=max_beds,
        property_type=property_type,
        required_data_types=tuple(data_types),
    )


def build_preferences(priority, max_cost):
    return RoutingPreferences(
        prioritize_speed=priority == 'speed',
        prioritize_cost=priority == 'cost',
        prioritize_quality=priority == 'quality',
        max_cost=max_cost,
    )


def build_coordinator() -> AcquisitionCoordinator:
    config = get_config()
    cache = PropertyCache(create_cache_store(config), config)
    return AcquisitionCoordinator(
        listing=ListingProvider(),
        detail=DetailProvider(),
        cache=cache,
        config=config,
    )


def request_options(func):
    """Shared search/preference options for route and acquire"""
    options = [
        click.option('--query', '-q', default=None, help='Free-text query'),
        click.option('--address', default=None, help='Street address'),
        click.option('--city', default=None),
        click.option('--state', default=None),
        click.option('--zip', 'zip_code', default=None),
        click.option('--min-price', type=float, default=None),
        click.option('--max-price', type=float, default=None),
        click.option('--min-beds', type=int, default=None),
        click.option('--max-beds', type=int, default=None),
        click.option('--type', 'property_type', default=None, help='Property type filter'),
        click.option('--data-type', 'data_types', multiple=True,
                     help='Required data type (repeatable)'),
        click.option('--priority', type=click.Choice(['speed', 'cost', 'quality']), default=None),
        click.option('--max-cost', type=float, default=None, help='Cost ceiling in USD'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def cli():
    """Property acquisition CLI"""
    pass


@cli.command()
def status():
    """Check configuration and cache backend"""
    config = get_config()
    logger.info("propacq status check")

    click.echo("\n📋 Configuration Status:")
    click.echo(f"  • Log Level: {config.system.log_level}")
    click.echo(f"  • Cache Backend: {config.cache.backend}")
    click.echo(f"  • Home Market: {config.batch.home_city}, {config.batch.home_state}")
    click.echo(f"  • Limits: address={config.batch.address_concurrency}, "
               f"enrichment={config.batch.enrichment_concurrency}")
    click.echo(f"  • Call Timeout: {config.providers.call_timeout:.0f}s")

    click.echo("\n🔑 API Keys:")
    for name, is_set in [
        ("Provider A (listings)", bool(config.providers.provider_a_key)),
        ("Provider B (details)", bool(config.providers.provider_b_key)),
    ]:
        click.echo(f"  • {name}: {'✅ Set' if is_set else '❌ Missing'}")

    click.echo("\n💾 Cache Store:")
    reachable = asyncio.run(_ping_cache())
    click.echo(f"  • {config.cache.backend}: {'✅ Reachable' if reachable else '❌ Unavailable (degraded mode)'}")

    click.echo("\n✅ System check complete!")


async def _ping_cache() -> bool:
    store = create_cache_store()
    cache = PropertyCache(store)
    try:
        return await cache.connect()
    finally:
        try:
            await store.close()
        except Exception as e:
            logger.debug(f"Error closing cache store: {e}")


@cli.command()
@request_options
def route(query, address, city, state, zip_code, min_price, max_price,
          min_beds, max_beds, property_type, data_types, priority, max_cost):
    """Print the routing decision for a request"""
    request = build_request(query, address, city, state, zip_code, min_price,
                            max_price, min_beds, max_beds, property_type, data_types)
    decision = DataSourceRouter().route(request, build_preferences(priority, max_cost))
    click.echo(json.dumps(decision.to_dict(), indent=2))


@cli.command()
@request_options
@click.option('--details/--no-details', default=False, help='Fetch detail-provider payloads')
@click.option('--images/--no-images', default=True, help='Fetch listing image carousels')
def acquire(query, address, city, state, zip_code, min_price, max_price,
            min_beds, max_beds, property_type, data_types, priority, max_cost,
            details, images):
    """Acquire and enrich properties, printing JSON"""
    request = build_request(query, address, city, state, zip_code, min_price,
                            max_price, min_beds, max_beds, property_type, data_types)
    preferences = build_preferences(priority, max_cost)
    options = BatchOptions(include_images=images, include_details=details)

    result = asyncio.run(run_acquire(request, preferences, options))
    click.echo(json.dumps(result.to_dict(), indent=2, default=str))


async def run_acquire(request, preferences, options):
    coordinator = build_coordinator()
    try:
        await coordinator.start()
        return await coordinator.acquire_properties(request, preferences, options)
    finally:
        await coordinator.stop()


@cli.command()
@click.argument('address_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--delay', type=float, default=None, help='Seconds between lookups')
def warm(address_file, delay):
    """Warm the cache from a file of "street, city, STATE ZIP" lines"""
    locators = []
    for line in address_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        parts = [p.strip() for p in line.split(',')]
        state_zip = parts[2].split() if len(parts) > 2 else []
        locators.append(PropertyLocator(
            address=parts[0],
            city=parts[1] if len(parts) > 1 else None,
            state=state_zip[0] if state_zip else None,
            zip_code=state_zip[1] if len(state_zip) > 1 else None,
        ))

    click.echo(f"🔥 Warming cache for {len(locators)} addresses...")
    summary = asyncio.run(run_warm(locators, delay))
    click.echo(f"  • Warmed: {summary['warmed']}")
    click.echo(f"  • Already cached: {summary['already_cached']}")
    click.echo(f"  • Errors: {summary['errors']}")


async def run_warm(locators, delay):
    coordinator = build_coordinator()
    try:
        await coordinator.start()
        return await coordinator.warm_addresses(locators, delay)
    finally:
        await coordinator.stop()


@cli.command()
@click.argument('pattern')
def purge(pattern):
    """Delete cache keys matching a glob pattern (e.g. "provider_b:addr:*")"""
    removed = asyncio.run(run_purge(pattern))
    click.echo(f"🗑️ Purged {removed} entries matching {pattern}")


async def run_purge(pattern):
    store = create_cache_store()
    cache = PropertyCache(store)
    try:
        await cache.connect()
        return await cache.purge(pattern)
    finally:
        await store.close()


if __name__ == "__main__":
    cli()
