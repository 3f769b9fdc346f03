"""Health probes"""

import time

from fastapi import APIRouter, Depends

from etf_data_service import __version__
from etf_data_service.container import ServiceContainer, get_container

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)):
    """Service health, including backing stores and market status"""
    if container.connections is not None:
        db_health = await container.connections.health()
    else:
        db_health = {"mongodb": {"status": "not_configured"}, "redis": {"status": "not_configured"}}
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "ETF DataService",
            "store": container.store.backend,
            "databases": db_health,
            "market": container.gate.status(),
            "fetch_enabled": container.orchestrator is not None,
            "ai_enabled": container.ai_manager is not None,
        },
        "message": "Service is running",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(container: ServiceContainer = Depends(get_container)):
    """Kubernetes readiness probe"""
    return {"ready": True, "store": container.store.backend}
