"""
Explicit get-or-compute result cache with per-entry TTL.

Values are pydantic models serialized to JSON so the in-process and Redis
backends behave the same. ``None`` results are never cached.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from shared.config import CacheBackendKind, Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_LOOKUPS
from shared.utils.redis_manager import RedisManager, cache_key

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class CacheBackend(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_s: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryCacheBackend(CacheBackend):
    """Process-local store with TTL expiry and least-recently-used eviction."""

    def __init__(self, max_entries: int = 5000, clock: Callable[[], float] = time.monotonic) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl_s: float) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl_s, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class RedisCacheBackend(CacheBackend):
    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get_value(key)

    async def set(self, key: str, value: str, ttl_s: float) -> None:
        await self._redis.set_value(key, value, int(ttl_s))

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)


class ResultCache:
    """
    Namespaced get-or-compute facade over a backend.

    Backend errors degrade to a miss (the value is recomputed) so an
    unavailable Redis never fails the read path.
    """

    def __init__(self, backend: CacheBackend, namespace: str = "default") -> None:
        self._backend = backend
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return cache_key(self._namespace, key)

    async def get(self, key: str, model: type[M]) -> Optional[M]:
        try:
            raw = await self._backend.get(self._key(key))
        except Exception as exc:
            logger.warning("cache_get_failed", namespace=self._namespace, key=key, error=str(exc))
            return None
        if raw is None:
            return None
        return model.model_validate_json(raw)

    async def set(self, key: str, value: BaseModel, ttl_s: float) -> None:
        try:
            await self._backend.set(self._key(key), value.model_dump_json(), ttl_s)
        except Exception as exc:
            logger.warning("cache_set_failed", namespace=self._namespace, key=key, error=str(exc))

    async def invalidate(self, key: str) -> None:
        await self._backend.delete(self._key(key))

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Optional[M]]],
        model: type[M],
        ttl_s: float,
    ) -> Optional[M]:
        cached = await self.get(key, model)
        if cached is not None:
            CACHE_LOOKUPS.labels(namespace=self._namespace, result="hit").inc()
            return cached
        CACHE_LOOKUPS.labels(namespace=self._namespace, result="miss").inc()
        value = await compute()
        if value is not None and ttl_s > 0:
            await self.set(key, value, ttl_s)
        return value


def build_cache_backend(settings: Settings | None = None, redis: RedisManager | None = None) -> CacheBackend:
    settings = settings or get_settings()
    if settings.cache_backend == CacheBackendKind.REDIS:
        if redis is None:
            raise ValueError("Redis cache backend requires a RedisManager")
        return RedisCacheBackend(redis)
    return MemoryCacheBackend(max_entries=settings.cache_max_entries)
