"""
Per-tier lease lock so two triggers never run the same tier at once.

With Redis connected the lease is ``SET key token NX EX ttl``; the TTL frees
a lock left behind by a crashed worker. Without Redis the lock only covers
this process.
"""

import logging
import uuid
from typing import Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_KEY_PREFIX = "etf:fetch-lock:"


class TierRunLock:
    def __init__(self, redis: Optional[Redis] = None, ttl_seconds: int = 1800):
        self._redis = redis
        self._ttl = ttl_seconds
        self._tokens: Dict[str, str] = {}

    async def acquire(self, tier: str) -> bool:
        if tier in self._tokens:
            return False
        token = uuid.uuid4().hex
        if self._redis is not None:
            try:
                acquired = await self._redis.set(_KEY_PREFIX + tier, token, nx=True, ex=self._ttl)
            except RedisError as exc:
                logger.warning(f"Redis lock unavailable for {tier}, using process lock: {exc}")
            else:
                if not acquired:
                    return False
        self._tokens[tier] = token
        return True

    async def release(self, tier: str) -> None:
        token = self._tokens.pop(tier, None)
        if token is None or self._redis is None:
            return
        key = _KEY_PREFIX + tier
        try:
            # only delete our own lease
            if await self._redis.get(key) == token:
                await self._redis.delete(key)
        except RedisError as exc:
            logger.warning(f"Failed to release lock for {tier}, it will expire: {exc}")

    def held(self, tier: str) -> bool:
        return tier in self._tokens
