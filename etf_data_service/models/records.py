"""
Cached record models.

Everything the cache layer persists is wrapped in a ``CacheEntry`` carrying
``fetched_at`` / ``expires_at``; the payload models below are what the
orchestrator writes and the read path serves.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class CacheEntry(BaseModel, Generic[T]):
    key: str
    payload: T
    fetched_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _check_window(self):
        if self.expires_at <= self.fetched_at:
            raise ValueError("expires_at must be later than fetched_at")
        return self

    def state(self, now: datetime, staleness_window: timedelta) -> CacheState:
        if now >= self.expires_at:
            return CacheState.EXPIRED
        if self.expires_at - now < staleness_window:
            return CacheState.STALE
        return CacheState.FRESH


# ── Upstream shapes ───────────────────────────────────────

class LatestQuote(BaseModel):
    symbol: str
    bid: float
    ask: float
    timestamp: Optional[int] = None


class PreviousClose(BaseModel):
    symbol: str
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float
    volume: float = 0.0
    timestamp: Optional[int] = None


# ── Cached payloads ───────────────────────────────────────

class QuoteRecord(BaseModel):
    symbol: str
    bid: float
    ask: float
    midpoint: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    quoted_at: Optional[int] = None

    @classmethod
    def derive(
        cls,
        quote: LatestQuote,
        previous_close: Optional[float] = None,
    ) -> "QuoteRecord":
        """Build a record with midpoint and change figures computed once"""
        midpoint = (quote.bid + quote.ask) / 2
        change = change_percent = None
        if previous_close:
            change = midpoint - previous_close
            change_percent = change / previous_close * 100
        return cls(
            symbol=quote.symbol,
            bid=quote.bid,
            ask=quote.ask,
            midpoint=midpoint,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            quoted_at=quote.timestamp,
        )


class Bar(BaseModel):
    timestamp: int  # epoch ms, as delivered upstream
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class HistoricalSeries(BaseModel):
    symbol: str
    granularity: str = "day"
    bars: List[Bar] = Field(default_factory=list)
    window_start: date
    window_end: date

    @property
    def last_timestamp(self) -> Optional[int]:
        return self.bars[-1].timestamp if self.bars else None


class TopPick(BaseModel):
    symbol: str
    name: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    ai_score: int
    signal: str
    risk_level: str
    weekly_history: List[float] = Field(default_factory=list)
    week_change: float = 0.0
    rank: int = 0
    provider: Optional[str] = None


class RankedSnapshot(BaseModel):
    picks: List[TopPick] = Field(default_factory=list)


# ── Run bookkeeping ───────────────────────────────────────

class FetchRunLog(BaseModel):
    tier: str
    symbols: List[str]
    status: RunStatus
    fetch_count: int = 0
    duration_ms: int = 0
    error_message: Optional[str] = None
    created_at: datetime


class CollectionResult(BaseModel):
    success: int = 0
    failed: int = 0


class RunSummary(BaseModel):
    tier: str
    status: RunStatus
    message: str = ""
    is_first_fetch: Optional[bool] = None
    fetch_count: int = 0
    failure_count: int = 0
    results: Dict[str, CollectionResult] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime
    market_status: Optional[str] = None
    cache_stats: Optional[Dict[str, int]] = None
