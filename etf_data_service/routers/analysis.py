"""
AI analysis
GET  /api/analysis/providers              - registered providers, routing table, fallback events
GET  /api/analysis/{symbol}               - score from cached data
POST /api/analysis/{symbol}/score         - score a supplied snapshot
POST /api/analysis/{symbol}/explanation   - plain-language explanation of a result
POST /api/analysis/{symbol}/sentiment     - market sentiment
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from etf_data_service.ai.manager import AIServiceManager
from etf_data_service.ai.types import AIError, AIRateLimitError, AnalysisResult, MarketSnapshot
from etf_data_service.container import ServiceContainer, get_container
from etf_data_service.models.response import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


class SentimentRequest(BaseModel):
    context: Optional[str] = None


def _manager(container: ServiceContainer = Depends(get_container)) -> AIServiceManager:
    if container.ai_manager is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI analysis is not configured")
    return container.ai_manager


def _ai_failure(exc: AIError) -> HTTPException:
    logger.error(f"AI request failed: {exc}")
    code = status.HTTP_429_TOO_MANY_REQUESTS if isinstance(exc, AIRateLimitError) else status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(exc))


@router.get("/providers", response_model=ApiResponse)
async def providers(manager: AIServiceManager = Depends(_manager)):
    return ApiResponse.ok(data=manager.stats())


@router.get("/{symbol}", response_model=ApiResponse)
async def analyze_cached(
    symbol: str,
    container: ServiceContainer = Depends(get_container),
    manager: AIServiceManager = Depends(_manager),
):
    snapshot = await container.etf_service.market_snapshot(symbol)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No cached data for {symbol.upper()}")
    try:
        result = await manager.generate_score(snapshot.symbol, snapshot)
    except AIError as exc:
        raise _ai_failure(exc)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.post("/{symbol}/score", response_model=ApiResponse)
async def score(symbol: str, body: MarketSnapshot, manager: AIServiceManager = Depends(_manager)):
    try:
        result = await manager.generate_score(symbol.upper(), body)
    except AIError as exc:
        raise _ai_failure(exc)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.post("/{symbol}/explanation", response_model=ApiResponse)
async def explanation(symbol: str, body: AnalysisResult, manager: AIServiceManager = Depends(_manager)):
    try:
        text = await manager.generate_explanation(symbol.upper(), body)
    except AIError as exc:
        raise _ai_failure(exc)
    return ApiResponse.ok(data={"symbol": symbol.upper(), "explanation": text})


@router.post("/{symbol}/sentiment", response_model=ApiResponse)
async def sentiment(symbol: str, body: SentimentRequest, manager: AIServiceManager = Depends(_manager)):
    try:
        result = await manager.generate_sentiment(symbol.upper(), body.context)
    except AIError as exc:
        raise _ai_failure(exc)
    return ApiResponse.ok(data=result.model_dump(mode="json"))
