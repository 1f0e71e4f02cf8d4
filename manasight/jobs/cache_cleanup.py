"""
Periodic cache maintenance.

Expired hot-tier entries are only dropped lazily on read; this job sweeps
them so idle keys do not hold memory until they are evicted. Started by the
application lifespan.
"""

import asyncio
import logging

from manasight.cache.coordinator import CacheCoordinator

logger = logging.getLogger(__name__)


def run_cleanup(coordinator: CacheCoordinator) -> int:
    """Purge expired entries once. Returns the number removed."""
    removed = coordinator.purge_expired()
    logger.info("CACHE_CLEANUP", extra={"removed": removed})
    return removed


async def cleanup_loop(coordinator: CacheCoordinator, interval: float) -> None:
    """Run `run_cleanup` every `interval` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        run_cleanup(coordinator)


def start_cleanup_task(coordinator: CacheCoordinator, interval: float) -> asyncio.Task[None]:
    return asyncio.create_task(cleanup_loop(coordinator, interval), name="cache-cleanup")
