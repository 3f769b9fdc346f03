"""
MongoDB (motor) and Redis (redis.asyncio) handles for one application
instance. Either backend may be missing: the record store then falls back to
memory and the run lock to a process-local lock.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis import asyncio as aioredis
from redis.asyncio import Redis

from etf_data_service.config import DataServiceSettings

logger = logging.getLogger(__name__)


class DatabaseConnections:

    def __init__(self, settings: DataServiceSettings):
        self._settings = settings
        self.mongo_client: Optional[AsyncIOMotorClient] = None
        self.mongo_db: Optional[AsyncIOMotorDatabase] = None
        self.redis: Optional[Redis] = None

    async def connect(self) -> Dict[str, bool]:
        """Open both backends; a failure is logged and leaves that handle unset"""
        return {"mongodb": await self._connect_mongodb(), "redis": await self._connect_redis()}

    async def _connect_mongodb(self) -> bool:
        s = self._settings
        if not s.MONGODB_ENABLED:
            logger.info("MongoDB disabled by configuration")
            return False
        client = AsyncIOMotorClient(
            s.MONGO_URI,
            tz_aware=True,
            maxPoolSize=s.MONGO_MAX_CONNECTIONS,
            minPoolSize=s.MONGO_MIN_CONNECTIONS,
            serverSelectionTimeoutMS=s.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            connectTimeoutMS=s.MONGO_CONNECT_TIMEOUT_MS,
            socketTimeoutMS=s.MONGO_SOCKET_TIMEOUT_MS,
        )
        try:
            await client.admin.command("ping")
        except Exception as exc:
            logger.warning(f"⚠️ MongoDB unreachable at {s.MONGODB_HOST}:{s.MONGODB_PORT}: {exc}")
            client.close()
            return False
        self.mongo_client = client
        self.mongo_db = client[s.MONGODB_DATABASE]
        logger.info(f"✅ MongoDB connected: {s.MONGODB_HOST}:{s.MONGODB_PORT}/{s.MONGODB_DATABASE}")
        return True

    async def _connect_redis(self) -> bool:
        s = self._settings
        if not s.REDIS_ENABLED:
            logger.info("Redis disabled by configuration")
            return False
        client = aioredis.from_url(
            s.REDIS_URL,
            max_connections=s.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=10,
        )
        try:
            await client.ping()
        except Exception as exc:
            logger.warning(f"⚠️ Redis unreachable at {s.REDIS_HOST}:{s.REDIS_PORT}: {exc}")
            await client.aclose()
            return False
        self.redis = client
        logger.info(f"✅ Redis connected: {s.REDIS_HOST}:{s.REDIS_PORT}")
        return True

    async def close(self) -> None:
        if self.mongo_client is not None:
            self.mongo_client.close()
            self.mongo_client = self.mongo_db = None
            logger.info("MongoDB connection closed")
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis connection closed")

    async def health(self) -> Dict[str, Dict[str, Any]]:
        probes: Dict[str, Optional[Callable[[], Awaitable[Any]]]] = {
            "mongodb": (lambda: self.mongo_client.admin.command("ping")) if self.mongo_client else None,
            "redis": self.redis.ping if self.redis else None,
        }
        enabled = {"mongodb": self._settings.MONGODB_ENABLED, "redis": self._settings.REDIS_ENABLED}

        result = {}
        for name, probe in probes.items():
            if probe is None:
                result[name] = {"status": "disconnected" if enabled[name] else "disabled"}
                continue
            try:
                await probe()
                result[name] = {"status": "healthy"}
            except Exception as exc:
                result[name] = {"status": "unhealthy", "error": str(exc)}
        return result
