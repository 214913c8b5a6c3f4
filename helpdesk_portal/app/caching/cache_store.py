"""
Two-tier TTL cache for the helpdesk portal.

The volatile tier is an in-process dict; the persistent tier is a
:class:`StorageBackend` consulted only for namespaces whose policy is
``persist``. Volatile writes happen before any await so a ``set`` followed by a
``get`` in the same task always observes the written value.
"""

import fnmatch
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from helpdesk_shared.errors import InvalidTTL
from helpdesk_shared.logging import get_logger
from helpdesk_shared.metrics import NullMetrics
from .namespaces import CacheKey, NamespaceRegistry
from .storage_backend import NullStorageBackend, StorageBackend, StoredRecord

DEFAULT_SWEEP_INTERVAL_MS = 60 * 1000

KeyLike = Union[CacheKey, str]


@dataclass
class CacheEntry:
    """A volatile-tier entry."""

    key: str
    value: Any
    expires_at: int


class CacheStore:
    """Volatile cache with optional write-through persistence and lazy expiry sweep."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        *,
        registry: Optional[NamespaceRegistry] = None,
        sweep_interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS,
        clock: Callable[[], float] = time.time,
        metrics: Optional[Any] = None,
    ):
        if sweep_interval_ms <= 0:
            raise ValueError("sweep_interval_ms must be positive")
        self.storage = storage if storage is not None else NullStorageBackend()
        self.registry = registry if registry is not None else NamespaceRegistry()
        self.sweep_interval_ms = sweep_interval_ms
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.logger = get_logger("portal.cache")

        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._last_sweep_ms = self._now_ms()
        self._stats = {"hits": 0, "misses": 0, "promotions": 0, "evictions": 0, "sweeps": 0}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _namespace_label(self, key: CacheKey) -> str:
        return key.namespace.value if key.namespace is not None else "other"

    def _record(self, key: CacheKey, result: str) -> None:
        self.metrics.increment_counter(
            "portal_cache_requests_total",
            namespace=self._namespace_label(key),
            result=result,
        )

    async def set(self, key: KeyLike, value: Any, ttl_ms: Union[int, float]) -> None:
        """Store ``value`` for ``ttl_ms`` milliseconds, replacing any previous entry."""
        if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, (int, float)) or ttl_ms <= 0:
            raise InvalidTTL(ttl_ms, {"key": str(key)})

        cache_key = self.registry.coerce(key)
        rendered = cache_key.render()
        expires_at = self._now_ms() + int(ttl_ms)
        self._entries[rendered] = CacheEntry(rendered, value, expires_at)

        if self.registry.is_persistent(cache_key):
            stored = await self.storage.write(rendered, StoredRecord(value, expires_at), int(ttl_ms))
            self.logger.debug(
                "Cache entry persisted" if stored else "Cache entry kept in memory only",
                key=rendered,
                ttl_ms=int(ttl_ms),
            )

    async def get(self, key: KeyLike, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss."""
        now = self._now_ms()
        if now - self._last_sweep_ms > self.sweep_interval_ms:
            self.sweep()

        cache_key = self.registry.coerce(key)
        rendered = cache_key.render()
        persistent = self.registry.is_persistent(cache_key)

        entry = self._entries.get(rendered)
        if entry is not None:
            if now <= entry.expires_at:
                self._stats["hits"] += 1
                self._record(cache_key, "hit")
                return entry.value
            del self._entries[rendered]
            if persistent:
                await self.storage.remove(rendered)
            self._stats["misses"] += 1
            self._record(cache_key, "expired")
            return default

        if persistent:
            record = await self.storage.read(rendered)
            if record is not None:
                if now <= record.expiry:
                    self._entries[rendered] = CacheEntry(rendered, record.value, record.expiry)
                    self._stats["promotions"] += 1
                    self._stats["hits"] += 1
                    self._record(cache_key, "promoted")
                    self.logger.debug("Cache entry promoted from storage", key=rendered, expires_at=record.expiry)
                    return record.value
                await self.storage.remove(rendered)

        self._stats["misses"] += 1
        self._record(cache_key, "miss")
        return default

    async def invalidate(self, key: KeyLike) -> None:
        """Remove ``key`` from both tiers."""
        rendered = self.registry.coerce(key).render()
        self._entries.pop(rendered, None)
        await self.storage.remove(rendered)
        self.logger.debug("Cache entry invalidated", key=rendered)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Invalidate every key matching the glob ``pattern`` in either tier."""
        matched = {key for key in self._entries if fnmatch.fnmatchcase(key, pattern)}
        matched.update(await self.storage.keys(pattern))
        for rendered in matched:
            self._entries.pop(rendered, None)
            await self.storage.remove(rendered)
        if matched:
            self.logger.info("Invalidated cache pattern", pattern=pattern, keys_count=len(matched))
        return len(matched)

    async def clear(self) -> None:
        """Drop every volatile entry and every stored record under the cache prefix."""
        self._entries.clear()
        removed = await self.storage.clear()
        self.logger.info("Cache cleared", persisted_removed=removed)

    def sweep(self) -> int:
        """Evict expired volatile entries. Persisted copies expire on their next read."""
        now = self._now_ms()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep_ms = now
        self._stats["sweeps"] += 1
        self._stats["evictions"] += len(expired)
        if expired:
            self.logger.debug("Swept expired cache entries", evicted=len(expired))
        return len(expired)

    def contains(self, key: KeyLike) -> bool:
        """Whether the volatile tier currently holds ``key`` (expired or not)."""
        return self.registry.coerce(key).render() in self._entries

    def expires_at(self, key: KeyLike) -> Optional[int]:
        entry = self._entries.get(self.registry.coerce(key).render())
        return entry.expires_at if entry is not None else None

    def stats(self) -> Dict[str, int]:
        return {**self._stats, "entries": len(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)
