"""
Composition root: builds every component from one settings object at
startup and hands them to the routers through ``Depends(get_container)``.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request

from etf_data_service.ai.manager import AIManagerConfig, AIServiceManager
from etf_data_service.ai.types import NoProviderAvailableError
from etf_data_service.config import DataServiceSettings
from etf_data_service.db import DatabaseConnections
from etf_data_service.db.store import MemoryRecordStore, MongoRecordStore, RecordStore
from etf_data_service.layers.acquisition import PolygonClient
from etf_data_service.layers.cache import CacheLayer
from etf_data_service.layers.market_hours import MarketHoursGate
from etf_data_service.services.etf_service import ETFService
from etf_data_service.services.fetch_service import FetchOrchestrator
from etf_data_service.services.run_lock import TierRunLock

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: DataServiceSettings
    store: RecordStore
    cache: CacheLayer
    gate: MarketHoursGate
    run_lock: TierRunLock
    etf_service: ETFService
    polygon: Optional[PolygonClient] = None
    orchestrator: Optional[FetchOrchestrator] = None
    ai_manager: Optional[AIServiceManager] = None
    connections: Optional[DatabaseConnections] = None

    async def aclose(self):
        if self.polygon is not None:
            await self.polygon.aclose()
        if self.connections is not None:
            await self.connections.close()


async def build_container(
    settings: DataServiceSettings,
    connections: Optional[DatabaseConnections] = None,
) -> ServiceContainer:
    mongo_db = connections.mongo_db if connections else None
    redis = connections.redis if connections else None

    if mongo_db is not None:
        store: RecordStore = MongoRecordStore(mongo_db)
        try:
            await store.ensure_indexes()
        except Exception as exc:
            logger.warning(f"⚠️ Could not create MongoDB indexes: {exc}")
    else:
        logger.warning("⚠️ MongoDB unavailable, cache is in-memory and will not survive restarts")
        store = MemoryRecordStore()

    cache = CacheLayer(
        store,
        staleness_window=timedelta(seconds=settings.STALENESS_WINDOW_SECONDS),
        run_log_retention=timedelta(seconds=settings.RUN_LOG_RETENTION_SECONDS),
    )
    gate = MarketHoursGate.from_settings(settings)
    run_lock = TierRunLock(redis, settings.RUN_LOCK_TTL_SECONDS)

    ai_manager: Optional[AIServiceManager] = AIServiceManager(AIManagerConfig.from_settings(settings))
    try:
        await ai_manager.initialize()
    except NoProviderAvailableError as exc:
        logger.warning(f"⚠️ AI analysis disabled: {exc}")
        ai_manager = None

    polygon = orchestrator = None
    if settings.POLYGON_API_KEY:
        polygon = PolygonClient.from_settings(settings)
        orchestrator = FetchOrchestrator(
            settings, cache, polygon, gate, run_lock=run_lock, ai_manager=ai_manager,
        )
    else:
        logger.warning("⚠️ POLYGON_API_KEY not set, fetch runs are disabled")

    return ServiceContainer(
        settings=settings,
        store=store,
        cache=cache,
        gate=gate,
        run_lock=run_lock,
        etf_service=ETFService(cache, orchestrator),
        polygon=polygon,
        orchestrator=orchestrator,
        ai_manager=ai_manager,
        connections=connections,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
