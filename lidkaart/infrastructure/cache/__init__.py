"""
Cache Store Infrastructure

Implementations of the CacheStore contract:
- InMemoryCacheStore: process-local store
- RedisCacheStore: shared store backed by Redis hashes
"""

from .memory_store import InMemoryCacheStore
from .redis_store import RedisCacheStore

__all__ = [
    "InMemoryCacheStore",
    "RedisCacheStore",
]
