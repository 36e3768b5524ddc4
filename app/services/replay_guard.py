"""
Replay guard - short-lived idempotency markers for webhook notifications.

Two notifications with the same key inside the TTL are processed once.
Losing the markers (restart, Redis flush) only costs redundant work: the
order reconciler is idempotent on its own.
"""

import asyncio
import logging
import time
from functools import lru_cache
from typing import Callable, Dict, Optional

from redis.asyncio.client import Redis

from app.config import settings
from app.redis import RedisClient

logger = logging.getLogger(__name__)


def idempotency_key(request_id: Optional[str], topic: Optional[str], resource_id: Optional[str]) -> str:
    """Key for a notification: the request id, or topic + resource id without one."""
    if request_id:
        return request_id
    return f"{topic}-{resource_id}"


class ReplayGuard:
    """Interface shared by the in-memory and Redis guards."""

    ttl_seconds: int

    async def check_and_mark(self, key: str) -> bool:
        """
        Atomically claim `key`. True if the caller should process the
        notification, False if the key is already held and unexpired.
        """
        raise NotImplementedError

    async def should_process(self, key: str) -> bool:
        """Non-claiming lookup: True if the key is absent or expired."""
        raise NotImplementedError

    async def mark_processed(self, key: str) -> None:
        raise NotImplementedError

    async def release(self, key: str) -> None:
        """Drop a claim so a sender retry is not mistaken for a replay."""
        raise NotImplementedError


class InMemoryReplayGuard(ReplayGuard):
    """Process-local guard with lazy expiry."""

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _purge(self, now: float) -> None:
        expired = [k for k, expires_at in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]

    async def check_and_mark(self, key: str) -> bool:
        async with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._entries:
                return False
            self._entries[key] = now + self.ttl_seconds
            return True

    async def should_process(self, key: str) -> bool:
        async with self._lock:
            self._purge(self._clock())
            return key not in self._entries

    async def mark_processed(self, key: str) -> None:
        async with self._lock:
            self._entries[key] = self._clock() + self.ttl_seconds

    async def release(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisReplayGuard(ReplayGuard):
    """Shared guard backed by Redis SET NX EX."""

    PREFIX = "fotos:webhook:"

    def __init__(self, redis: Redis, ttl_seconds: int = 300):
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.PREFIX}{key}"

    async def check_and_mark(self, key: str) -> bool:
        claimed = await self._redis.set(self._key(key), "1", nx=True, ex=self.ttl_seconds)
        return bool(claimed)

    async def should_process(self, key: str) -> bool:
        return not await self._redis.exists(self._key(key))

    async def mark_processed(self, key: str) -> None:
        await self._redis.set(self._key(key), "1", ex=self.ttl_seconds)

    async def release(self, key: str) -> None:
        await self._redis.delete(self._key(key))


@lru_cache
def get_replay_guard() -> ReplayGuard:
    """Dependency: Redis guard when REDIS_URL is set, process-local otherwise."""
    if RedisClient.is_configured():
        logger.info("Replay guard using Redis")
        return RedisReplayGuard(RedisClient.get_client(), ttl_seconds=settings.replay_ttl_seconds)
    logger.info("Replay guard using process-local cache")
    return InMemoryReplayGuard(ttl_seconds=settings.replay_ttl_seconds)
