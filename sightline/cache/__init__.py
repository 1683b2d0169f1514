"""
AI decision cache: durable per-test stores, scratch stores and commit.
"""

from sightline.cache.cleanup import clean_up_cache, purge_legacy_cache
from sightline.cache.emit import emit_cache
from sightline.cache.store import (
    CacheStore,
    MemoryCacheStore,
    TestCache,
    get_test_cache_path,
)

__all__ = [
    "CacheStore",
    "MemoryCacheStore",
    "TestCache",
    "clean_up_cache",
    "emit_cache",
    "get_test_cache_path",
    "purge_legacy_cache",
]
