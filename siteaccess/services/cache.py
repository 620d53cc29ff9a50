"""
Role cache: (user, project) -> EffectiveRoleResult with a bounded lifetime.

Each user has a generation counter. Invalidation bumps it, and ``set`` only
stores when the caller's generation is still current, so a resolution that
started before a membership write cannot repopulate the stale answer after
the write has invalidated it.
"""

from __future__ import annotations

import itertools
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable

import redis.asyncio as redis
import structlog

from siteaccess.core.config import Settings
from siteaccess.core.metrics import MetricsCollector
from siteaccess.core.redis import get_redis
from siteaccess.schemas.roles import EffectiveRoleResult

log = structlog.get_logger()


class RoleCache(ABC):
    """Storage for resolved roles, injected into the resolver."""

    def __init__(self, metrics: MetricsCollector | None = None) -> None:
        self.metrics = metrics or MetricsCollector()

    @abstractmethod
    async def get(self, user_id: uuid.UUID, project_id: uuid.UUID) -> EffectiveRoleResult | None: ...

    @abstractmethod
    async def set(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        result: EffectiveRoleResult,
        ttl_seconds: float,
        generation: int,
    ) -> bool: ...

    @abstractmethod
    async def generation(self, user_id: uuid.UUID) -> int: ...

    @abstractmethod
    async def invalidate(self, user_id: uuid.UUID, project_id: uuid.UUID | None = None) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...


class InMemoryRoleCache(RoleCache):
    """
    Process-local cache guarded by a lock; stale entries are evicted on read.

    Generations come from one increasing counter. A user only keeps an own
    generation while they have entries; everyone else shares ``_baseline``,
    which is bumped whenever a user's own generation is released, so memory
    stays proportional to the number of cached users.
    """

    def __init__(
        self,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(metrics)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[uuid.UUID, dict[uuid.UUID, tuple[EffectiveRoleResult, float]]] = {}
        self._generations: dict[uuid.UUID, int] = {}
        self._counter = itertools.count(1)
        self._baseline = 0

    def __len__(self) -> int:
        with self._lock:
            return sum(len(projects) for projects in self._entries.values())

    def _current(self, user_id: uuid.UUID) -> int:
        return self._generations.get(user_id, self._baseline)

    def _release(self, user_id: uuid.UUID) -> None:
        # Caller holds the lock and has just emptied the user's entries.
        self._entries.pop(user_id, None)
        if self._generations.pop(user_id, None) is not None:
            self._baseline = next(self._counter)

    async def get(self, user_id, project_id):
        with self._lock:
            projects = self._entries.get(user_id, {})
            entry = projects.get(project_id)
            if entry is not None and entry[1] <= self._clock():
                del projects[project_id]
                entry = None
                if not projects:
                    self._release(user_id)
        if entry is None:
            self.metrics.inc("role_cache_misses_total")
            return None
        self.metrics.inc("role_cache_hits_total")
        return entry[0]

    async def set(self, user_id, project_id, result, ttl_seconds, generation):
        if ttl_seconds <= 0:
            return False
        with self._lock:
            if self._current(user_id) != generation:
                return False
            self._generations.setdefault(user_id, generation)
            self._entries.setdefault(user_id, {})[project_id] = (result, self._clock() + ttl_seconds)
        return True

    async def generation(self, user_id):
        with self._lock:
            return self._current(user_id)

    async def invalidate(self, user_id, project_id=None):
        with self._lock:
            projects = self._entries.get(user_id, {})
            if project_id is not None:
                projects.pop(project_id, None)
            else:
                projects.clear()
            if projects:
                self._generations[user_id] = next(self._counter)
            else:
                self._generations.pop(user_id, None)
                self._entries.pop(user_id, None)
                self._baseline = next(self._counter)
        self.metrics.inc("role_cache_invalidations_total")

    async def clear(self):
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._baseline = next(self._counter)


class RedisRoleCache(RoleCache):
    """
    Shared cache in Redis.

    Entries are keyed under the user's current generation, so invalidating a
    user is a single INCR; orphaned entries age out through their TTL.
    """

    def __init__(
        self,
        client: redis.Redis,
        metrics: MetricsCollector | None = None,
        prefix: str = "siteaccess",
    ) -> None:
        super().__init__(metrics)
        self._redis = client
        self._prefix = prefix

    def _generation_key(self, user_id: uuid.UUID) -> str:
        return f"{self._prefix}:role-gen:{user_id}"

    def _entry_key(self, user_id: uuid.UUID, generation: int, project_id: uuid.UUID) -> str:
        return f"{self._prefix}:role:{user_id}:{generation}:{project_id}"

    async def generation(self, user_id):
        try:
            value = await self._redis.get(self._generation_key(user_id))
        except redis.RedisError as e:
            log.warning("role_cache.redis_error", op="generation", error=str(e))
            return -1
        return int(value) if value is not None else 0

    async def get(self, user_id, project_id):
        generation = await self.generation(user_id)
        payload = None
        if generation >= 0:
            try:
                payload = await self._redis.get(self._entry_key(user_id, generation, project_id))
            except redis.RedisError as e:
                log.warning("role_cache.redis_error", op="get", error=str(e))
        if payload is None:
            self.metrics.inc("role_cache_misses_total")
            return None
        self.metrics.inc("role_cache_hits_total")
        return EffectiveRoleResult.model_validate_json(payload)

    async def set(self, user_id, project_id, result, ttl_seconds, generation):
        # A negative generation means the read failed; never store under it.
        if ttl_seconds <= 0 or generation < 0:
            return False
        if await self.generation(user_id) != generation:
            return False
        try:
            await self._redis.set(
                self._entry_key(user_id, generation, project_id),
                result.model_dump_json(),
                px=max(1, int(ttl_seconds * 1000)),
            )
        except redis.RedisError as e:
            log.warning("role_cache.redis_error", op="set", error=str(e))
            return False
        return True

    async def invalidate(self, user_id, project_id=None):
        # Bumping the generation also drops the user's other projects.
        try:
            await self._redis.incr(self._generation_key(user_id))
        except redis.RedisError as e:
            log.error("role_cache.redis_error", op="invalidate", error=str(e))
            return
        self.metrics.inc("role_cache_invalidations_total")

    async def clear(self):
        try:
            async for key in self._redis.scan_iter(match=f"{self._prefix}:role*"):
                await self._redis.delete(key)
        except redis.RedisError as e:
            log.warning("role_cache.redis_error", op="clear", error=str(e))


async def build_role_cache(settings: Settings, metrics: MetricsCollector | None = None) -> RoleCache:
    """Pick the cache backend named in settings."""
    if settings.cache_backend == "redis":
        return RedisRoleCache(await get_redis(), metrics=metrics)
    return InMemoryRoleCache(metrics=metrics)
