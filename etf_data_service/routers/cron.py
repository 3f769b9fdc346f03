"""
Scheduled-trigger endpoints
GET /api/cron/status          - market status and recent runs
GET /api/cron/{tier}?force=   - run one fetch tier (quotes, fetch-data, quotes-all, historical)
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from etf_data_service.container import ServiceContainer, get_container
from etf_data_service.models.records import RunStatus
from etf_data_service.models.response import ApiResponse
from etf_data_service.routers.auth import verify_cron_secret
from etf_data_service.services.fetch_service import UnknownTierError

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.get("/status", response_model=ApiResponse)
async def cron_status(
    limit: int = Query(default=10, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    runs = await container.cache.run_logs.recent(limit)
    return ApiResponse.ok(data={
        "market": container.gate.status(),
        "tiers": sorted(container.orchestrator.tiers) if container.orchestrator else [],
        "recent_runs": [r.model_dump(mode="json") for r in runs],
    })


@router.get("/{tier}")
async def run_tier(
    tier: str,
    force: bool = Query(default=False, description="Run even when the market is closed"),
    container: ServiceContainer = Depends(get_container),
):
    if container.orchestrator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Fetching is not configured")
    try:
        summary = await container.orchestrator.run(tier, force=force)
    except UnknownTierError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown tier: {tier}")

    data = summary.model_dump(mode="json")
    if summary.status == RunStatus.FAILED:
        return ApiResponse.fail(error=summary.message, data=data).to_response(status.HTTP_500_INTERNAL_SERVER_ERROR)
    return ApiResponse.ok(data=data, message=summary.message)
