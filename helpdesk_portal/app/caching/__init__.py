"""
Portal caching package.

Provides the two-tier TTL cache, its persistent storage backends, the
lifetime policy and the request coalescer. Prefer short lifetimes for data
that changes often and explicit invalidation after every mutation.
"""

from .cache_store import CacheEntry, CacheStore
from .coalescer import RequestCoalescer
from .namespaces import CacheKey, CacheNamespace, NamespaceRegistry
from .storage_backend import (
    MemoryStorageBackend,
    NullStorageBackend,
    RedisStorageBackend,
    StorageBackend,
    StoredRecord,
)
from .ttl_policy import EntityKind, TTLCategory, TTLPolicy

__all__ = [
    "CacheEntry",
    "CacheStore",
    "RequestCoalescer",
    "CacheKey",
    "CacheNamespace",
    "NamespaceRegistry",
    "MemoryStorageBackend",
    "NullStorageBackend",
    "RedisStorageBackend",
    "StorageBackend",
    "StoredRecord",
    "EntityKind",
    "TTLCategory",
    "TTLPolicy",
]
