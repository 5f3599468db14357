"""KPI Cache: short-TTL cache-aside store for dashboard KPI snapshots.

``get`` never reports a miss to the caller: an absent or expired snapshot
is recomputed through the KPI service and stored before it is returned.

Two stores share one interface:
    - ``MemoryKPIStore`` keeps snapshots in process memory (default).
    - ``RedisKPIStore`` uses ``SETEX dashboard:kpis:<user_id>`` so several
      workers share a cache.  Redis failures are logged and treated as a
      miss; the database stays the source of truth.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from leasehub.domain.schemas import KPISnapshot

logger = logging.getLogger(__name__)

# 5 minutes, matching the dashboard refresh cadence
DEFAULT_TTL_SECONDS = 300


class MemoryKPIStore:
    """Process-local snapshot store."""

    def __init__(self):
        self._entries: dict[str, KPISnapshot] = {}

    async def get(self, user_id: str) -> Optional[KPISnapshot]:
        return self._entries.get(user_id)

    async def set(self, snapshot: KPISnapshot, ttl_seconds: int) -> None:
        self._entries[snapshot.user_id] = snapshot

    async def delete(self, *user_ids: str) -> None:
        for user_id in user_ids:
            self._entries.pop(user_id, None)


class RedisKPIStore:
    """Redis-backed snapshot store."""

    KEY_PREFIX = "dashboard:kpis:"

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisKPIStore":
        return cls(aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True))

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def get(self, user_id: str) -> Optional[KPISnapshot]:
        try:
            raw = await self.client.get(self._key(user_id))
        except RedisError as e:
            logger.warning("KPI cache read failed for user %s: %s", user_id, e)
            return None
        if not raw:
            return None
        return KPISnapshot.model_validate_json(raw)

    async def set(self, snapshot: KPISnapshot, ttl_seconds: int) -> None:
        try:
            await self.client.setex(
                self._key(snapshot.user_id), ttl_seconds, snapshot.model_dump_json(),
            )
        except RedisError as e:
            logger.warning("KPI cache write failed for user %s: %s", snapshot.user_id, e)

    async def delete(self, *user_ids: str) -> None:
        if not user_ids:
            return
        try:
            await self.client.delete(*(self._key(u) for u in user_ids))
        except RedisError as e:
            # Stale entries still expire with the TTL.
            logger.error("KPI cache invalidation failed for %s: %s", list(user_ids), e)

    async def close(self) -> None:
        await self.client.aclose()


class KPICache:
    """Cache-aside wrapper around a snapshot store and a compute function.

    An invalidation that lands while a computation for the same user is in
    flight bumps that user's generation, and the computation then does not
    store its (possibly stale) result.  Generations are only tracked while a
    computation is running.
    """

    def __init__(
        self,
        compute: Callable[[str], Awaitable[KPISnapshot]],
        store=None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = None,
    ):
        self._compute = compute
        self.store = store or MemoryKPIStore()
        self.ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._generations: dict[str, int] = {}
        self._inflight: dict[str, int] = {}

    def _is_fresh(self, snapshot: KPISnapshot) -> bool:
        computed_at = snapshot.computed_at
        if computed_at.tzinfo is None:
            computed_at = computed_at.replace(tzinfo=timezone.utc)
        return self._clock() - computed_at < timedelta(seconds=self.ttl_seconds)

    async def peek(self, user_id: str) -> Optional[KPISnapshot]:
        """Cached snapshot if present and within TTL, else None."""
        snapshot = await self.store.get(user_id)
        if snapshot is None or not self._is_fresh(snapshot):
            return None
        return snapshot

    async def get(self, user_id: str) -> KPISnapshot:
        snapshot = await self.peek(user_id)
        if snapshot is not None:
            return snapshot
        logger.debug("KPI cache miss for user %s", user_id)
        return await self.compute_and_store(user_id)

    async def compute_and_store(self, user_id: str) -> KPISnapshot:
        generation = self._generations.get(user_id, 0)
        self._inflight[user_id] = self._inflight.get(user_id, 0) + 1
        try:
            snapshot = await self._compute(user_id)
            if self._generations.get(user_id, 0) == generation:
                await self.store.set(snapshot, self.ttl_seconds)
            else:
                logger.debug("KPI snapshot for %s invalidated mid-compute, not cached", user_id)
        finally:
            self._release(user_id)
        return snapshot

    def _release(self, user_id: str) -> None:
        remaining = self._inflight[user_id] - 1
        if remaining:
            self._inflight[user_id] = remaining
            return
        del self._inflight[user_id]
        self._generations.pop(user_id, None)

    def _bump(self, user_id: str) -> None:
        if user_id in self._inflight:
            self._generations[user_id] = self._generations.get(user_id, 0) + 1

    async def invalidate(self, user_id: str) -> None:
        self._bump(user_id)
        await self.store.delete(user_id)
        logger.debug("Invalidated KPI cache for user %s", user_id)

    async def invalidate_many(self, user_ids: Iterable[str]) -> None:
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return
        for user_id in user_ids:
            self._bump(user_id)
        await self.store.delete(*user_ids)


def build_kpi_store(settings):
    """Redis store when ``redis_url`` is configured, otherwise in-process."""
    if settings.redis_url:
        logger.info("KPI cache using Redis")
        return RedisKPIStore.from_url(settings.redis_url)
    return MemoryKPIStore()
