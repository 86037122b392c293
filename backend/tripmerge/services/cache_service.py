"""Cache backends for provider results — in-process memory or Redis."""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import redis.asyncio as redis
from pydantic import BaseModel

from tripmerge.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """get / set-with-TTL / expire over JSON-serialisable values."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> bool:
        ...

    @abstractmethod
    async def expire(self, key: str) -> bool:
        ...

    async def close(self):
        return None


class MemoryCache(CacheBackend):
    """Process-local cache. Entries are stored serialised so callers never share state."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        self._entries[key] = (self._clock() + ttl, json.dumps(value, default=str))
        return True

    async def expire(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache(CacheBackend):
    """Redis-backed cache; degrades to always-miss when Redis is unreachable."""

    def __init__(self, url: str | None = None):
        self._url = url or settings.redis_url
        self._redis: redis.Redis | None = None

    async def _get_redis(self) -> redis.Redis | None:
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, cache disabled: {e}")
                self._redis = None
                return None
        return self._redis

    async def get(self, key: str) -> Any | None:
        """Get a value from cache. Returns None on miss or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Set a value in cache with TTL. Returns False on error."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def expire(self, key: str) -> bool:
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


def build_cache(backend: str | None = None) -> CacheBackend:
    """Cache backend named by settings (memory | redis)."""
    backend = (backend or settings.cache_backend).lower()
    if backend == "redis":
        return RedisCache()
    if backend != "memory":
        logger.warning(f"Unknown cache backend '{backend}', using memory")
    return MemoryCache()


def query_cache_key(prefix: str, query: BaseModel, options: BaseModel | None = None) -> str:
    """Stable key from the canonical JSON of a query plus its options."""
    payload = {
        "query": query.model_dump(mode="json"),
        "options": options.model_dump(mode="json", exclude={"use_cache"}) if options else None,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    digest = hashlib.md5(canonical.encode()).hexdigest()
    return f"{prefix}:{digest}"


cache_service = build_cache()
