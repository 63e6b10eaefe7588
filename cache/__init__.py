"""
Cache engines backing the distributed session.
"""

from cache.config import CacheEngineConfig
from cache.engine import AbstractCacheEngine, CacheEngine
from cache.filter_engine import FilterCacheEngine, NamespacedCacheEngine
from cache.memory_engine import MemoryCacheEngine
from cache.redis_engine import RedisCacheEngine

__all__ = [
    "AbstractCacheEngine",
    "CacheEngine",
    "CacheEngineConfig",
    "FilterCacheEngine",
    "MemoryCacheEngine",
    "NamespacedCacheEngine",
    "RedisCacheEngine",
]
