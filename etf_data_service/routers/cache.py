"""
Cache maintenance
GET  /api/cache/stats     - entry counts per collection
POST /api/cache/cleanup   - delete expired entries
"""

from fastapi import APIRouter, Depends

from etf_data_service.container import ServiceContainer, get_container
from etf_data_service.models.response import ApiResponse
from etf_data_service.routers.auth import verify_cron_secret

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(container: ServiceContainer = Depends(get_container)):
    stats = await container.cache.stats()
    return ApiResponse.ok(data={"backend": container.store.backend, **stats})


@router.post("/cleanup", response_model=ApiResponse, dependencies=[Depends(verify_cron_secret)])
async def cleanup(container: ServiceContainer = Depends(get_container)):
    deleted = await container.cache.cleanup_expired()
    return ApiResponse.ok(data=deleted, message=f"Removed {sum(deleted.values())} expired entries")
