import asyncio
import logging

from where_the_bus.cache import PositionCache
from where_the_bus.models import VehicleClass

logger = logging.getLogger(__name__)


async def warm_feed(cache: PositionCache, feed_type: VehicleClass, interval: float):
    """Keep one feed's cache entry fresh so callers rarely hit a cold start."""
    logger.info(
        "Starting cache warmer for %s — refreshing every %.0fs",
        feed_type.value,
        interval,
    )
    while True:
        try:
            await cache.get_or_fetch(feed_type)
        except asyncio.CancelledError:
            logger.info("Cache warmer for %s shutting down", feed_type.value)
            raise
        except Exception:
            logger.exception("Cache warm failed for %s", feed_type.value)

        await asyncio.sleep(interval)


async def run(cache: PositionCache, interval: float):
    """Start a warmer task per feed type."""
    tasks = [
        asyncio.create_task(warm_feed(cache, feed_type, interval))
        for feed_type in VehicleClass
    ]
    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Cache warmers shutting down")
        for t in tasks:
            t.cancel()
        raise
