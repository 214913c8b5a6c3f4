"""
Persistent storage tier for the portal cache.

Backends store JSON records of the shape ``{"value": ..., "expiry": <epoch ms>}``
under a fixed key prefix. Every backend swallows its own failures: a broken
store degrades the cache to volatile-only behaviour and never raises into
callers.
"""

import fnmatch
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from helpdesk_shared.errors import StorageUnavailable
from helpdesk_shared.logging import get_logger

DEFAULT_PREFIX = "helpdesk_cache:"


@dataclass(frozen=True)
class StoredRecord:
    """A persisted cache entry."""

    value: Any
    expiry: int

    def to_json(self) -> str:
        return json.dumps({"value": self.value, "expiry": self.expiry})

    @classmethod
    def from_json(cls, payload: Any) -> Optional["StoredRecord"]:
        """Parse a stored payload; anything malformed yields ``None``."""
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict) or "value" not in data:
            return None
        expiry = data.get("expiry")
        if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
            return None
        # json.loads accepts NaN and Infinity
        if not math.isfinite(expiry):
            return None
        return cls(value=data["value"], expiry=int(expiry))


class StorageBackend(ABC):
    """Durable key-value store for cache records.

    Keys passed in are the rendered cache keys; the backend applies its own
    prefix. Implementations must not raise: failures are logged and reported
    through the return value.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix

    def storage_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @abstractmethod
    async def read(self, key: str) -> Optional[StoredRecord]:
        """Return the record for ``key`` or ``None`` when absent or unreadable."""

    @abstractmethod
    async def write(self, key: str, record: StoredRecord, ttl_ms: int) -> bool:
        """Persist ``record``; ``False`` when the store refused it."""

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Delete ``key``; ``True`` also when it did not exist."""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """List stored cache keys (prefix stripped) matching a glob ``pattern``."""

    async def clear(self) -> int:
        """Remove every record under the prefix. Returns the number removed."""
        removed = 0
        for key in await self.keys("*"):
            if await self.remove(key):
                removed += 1
        return removed

    async def close(self) -> None:
        return None


class NullStorageBackend(StorageBackend):
    """Backend used when persistence is disabled."""

    async def read(self, key: str) -> Optional[StoredRecord]:
        return None

    async def write(self, key: str, record: StoredRecord, ttl_ms: int) -> bool:
        return False

    async def remove(self, key: str) -> bool:
        return True

    async def keys(self, pattern: str = "*") -> List[str]:
        return []


class MemoryStorageBackend(StorageBackend):
    """Process-local backend holding serialized records, as a durable store would."""

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        super().__init__(prefix)
        self.data: Dict[str, str] = {}
        self.logger = get_logger("portal.storage.memory")

    async def read(self, key: str) -> Optional[StoredRecord]:
        payload = self.data.get(self.storage_key(key))
        if payload is None:
            return None
        record = StoredRecord.from_json(payload)
        if record is None:
            self.logger.warning("Discarding unreadable cache record", key=key)
        return record

    async def write(self, key: str, record: StoredRecord, ttl_ms: int) -> bool:
        try:
            self.data[self.storage_key(key)] = record.to_json()
        except (TypeError, ValueError) as e:
            self.logger.warning("Failed to write cache record", key=key, error=str(e))
            return False
        return True

    async def remove(self, key: str) -> bool:
        self.data.pop(self.storage_key(key), None)
        return True

    async def keys(self, pattern: str = "*") -> List[str]:
        start = len(self.prefix)
        return [
            stored[start:]
            for stored in self.data
            if stored.startswith(self.prefix) and fnmatch.fnmatchcase(stored[start:], pattern)
        ]


class RedisStorageBackend(StorageBackend):
    """Redis-backed persistent tier. Records also carry a Redis-side expiry."""

    def __init__(self, redis_url: str, prefix: str = DEFAULT_PREFIX):
        super().__init__(prefix)
        self.redis_url = redis_url
        self.logger = get_logger("portal.storage.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    def _report(self, failure: StorageUnavailable) -> None:
        self.logger.warning(failure.message, **failure.details)

    async def read(self, key: str) -> Optional[StoredRecord]:
        try:
            redis_client = await self._get_redis()
            payload = await redis_client.get(self.storage_key(key))
        except Exception as e:
            self._report(StorageUnavailable("read", key, str(e)))
            return None

        if payload is None:
            return None
        record = StoredRecord.from_json(payload)
        if record is None:
            self._report(StorageUnavailable("parse", key, "malformed record"))
        return record

    async def write(self, key: str, record: StoredRecord, ttl_ms: int) -> bool:
        try:
            payload = record.to_json()
            redis_client = await self._get_redis()
            await redis_client.set(self.storage_key(key), payload, px=int(ttl_ms))
            return True
        except Exception as e:
            self._report(StorageUnavailable("write", key, str(e)))
            return False

    async def remove(self, key: str) -> bool:
        try:
            redis_client = await self._get_redis()
            await redis_client.delete(self.storage_key(key))
            return True
        except Exception as e:
            self._report(StorageUnavailable("remove", key, str(e)))
            return False

    async def keys(self, pattern: str = "*") -> List[str]:
        start = len(self.prefix)
        try:
            redis_client = await self._get_redis()
            found = []
            async for stored in redis_client.scan_iter(match=self.storage_key(pattern)):
                if isinstance(stored, bytes):
                    stored = stored.decode("utf-8")
                found.append(stored[start:])
            return found
        except Exception as e:
            self._report(StorageUnavailable("scan", pattern, str(e)))
            return []

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
