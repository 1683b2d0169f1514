"""
Commit of scratch cache entries into durable storage.
"""

import structlog

from sightline.cache.store import CacheStore

logger = structlog.get_logger()


async def emit_cache(scratch: CacheStore, durable: CacheStore) -> int:
    """
    Copy every scratch entry into the durable store.

    Only called once the run (or the current step) has a passing verdict;
    a failing run's scratch store is dropped instead.

    Returns:
        Number of entries written
    """
    entries = await scratch.items()
    if not entries:
        return 0

    await durable.set_many(entries)
    logger.info("cache_committed", entries=len(entries))
    return len(entries)
