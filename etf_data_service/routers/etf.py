"""
Cached ETF data
GET /api/etf/list                 - tracked universe with cache status
GET /api/etf/top-picks            - ranked top-picks board
GET /api/etf/{symbol}/quote       - latest quote (refresh=true re-fetches a non-fresh one)
GET /api/etf/{symbol}/history     - historical bars
GET /api/etf/{symbol}/details     - Polygon ticker reference data
"""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from etf_data_service import symbols as universe
from etf_data_service.container import ServiceContainer, get_container
from etf_data_service.layers.acquisition import PolygonAPIError
from etf_data_service.models.response import ApiResponse
from etf_data_service.services.etf_service import CacheLookup

router = APIRouter(prefix="/api/etf", tags=["etf"])


def _served(lookup: CacheLookup, what: str) -> ApiResponse:
    if not lookup.found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No cached {what}")
    return ApiResponse.ok(data=lookup.to_dict(), message=lookup.status)


@router.get("/list", response_model=ApiResponse)
async def list_etfs(
    universe_name: Literal["top", "all", "tracked"] = Query(default="top", alias="universe"),
    container: ServiceContainer = Depends(get_container),
):
    symbols = {
        "top": universe.TOP_50,
        "all": universe.ALL_ETFS,
        "tracked": universe.TRACKED_SYMBOLS,
    }[universe_name]
    rows = await container.etf_service.list_etfs(symbols)
    return ApiResponse.ok(data={"count": len(rows), "etfs": rows})


@router.get("/top-picks", response_model=ApiResponse)
async def top_picks(container: ServiceContainer = Depends(get_container)):
    return _served(await container.etf_service.get_top_picks(), "top picks")


@router.get("/{symbol}/quote", response_model=ApiResponse)
async def quote(
    symbol: str,
    refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return _served(await container.etf_service.get_quote(symbol, refresh=refresh), f"quote for {symbol.upper()}")


@router.get("/{symbol}/history", response_model=ApiResponse)
async def history(
    symbol: str,
    timespan: str = Query(default="day"),
    container: ServiceContainer = Depends(get_container),
):
    return _served(await container.etf_service.get_history(symbol, timespan), f"history for {symbol.upper()}")


@router.get("/{symbol}/details", response_model=ApiResponse)
async def details(symbol: str, container: ServiceContainer = Depends(get_container)):
    """Reference data straight from Polygon; not cached"""
    if container.polygon is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Polygon is not configured")
    symbol = symbol.strip().upper()
    try:
        info = await container.polygon.fetch_ticker_details(symbol)
    except PolygonAPIError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No details for {symbol}")
    return ApiResponse.ok(data={"symbol": symbol, "name": universe.etf_name(symbol), "details": info})
