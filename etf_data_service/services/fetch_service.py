"""
Fetch orchestration.

A run walks one tier's symbol list in batches: calls inside a batch are
strictly sequential with RATE_LIMIT_DELAY between upstream requests, and a
longer BATCH_DELAY separates batches. One symbol failing never stops the
run; its error is collected and the run ends ``partial``. Every run that
gets past the market-hours gate and the tier lock writes exactly one
FetchRunLog, including runs that blow up half way.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, field_validator

from etf_data_service import symbols as universe
from etf_data_service.ai.manager import AIServiceManager
from etf_data_service.ai.providers import HeuristicProvider
from etf_data_service.ai.types import AnalysisResult
from etf_data_service.config import DataServiceSettings
from etf_data_service.layers.acquisition import PolygonClient
from etf_data_service.layers.analysis import AnalysisLayer
from etf_data_service.layers.cache import CacheLayer
from etf_data_service.layers.market_hours import MarketHoursGate
from etf_data_service.layers.processing import ProcessingLayer
from etf_data_service.models.records import (
    Bar,
    CacheEntry,
    CollectionResult,
    FetchRunLog,
    QuoteRecord,
    RunStatus,
    RunSummary,
    TopPick,
)
from etf_data_service.services.run_lock import TierRunLock

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]

QUOTES = "quotes"
HISTORICAL = "historical"
TOP_PICKS = "top_picks"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Tier definitions ──────────────────────────────────────

class TierConfig(BaseModel):
    name: str
    symbols: List[str]
    cadence: Literal["intraday", "daily"] = "intraday"
    fetch_quotes: bool = True
    fetch_historical: bool = False
    refresh_top_picks: bool = False
    batch_size: int = 10
    quote_ttl: timedelta = timedelta(minutes=35)

    @field_validator("symbols")
    @classmethod
    def _dedupe(cls, v):
        return universe.unique(v)

    @property
    def gated(self) -> bool:
        return self.cadence == "intraday"


def default_tiers(settings: DataServiceSettings) -> Dict[str, TierConfig]:
    quote_ttl = timedelta(seconds=settings.QUOTE_TTL_SECONDS)
    tiers = [
        TierConfig(
            name="quotes",
            symbols=universe.REALTIME_SYMBOLS,
            cadence="intraday",
            batch_size=settings.REALTIME_BATCH_SIZE,
            quote_ttl=quote_ttl,
        ),
        TierConfig(
            name="fetch-data",
            symbols=universe.TRACKED_SYMBOLS,
            cadence="intraday",
            fetch_historical=True,
            refresh_top_picks=True,
            batch_size=len(universe.TRACKED_SYMBOLS),
            quote_ttl=quote_ttl,
        ),
        TierConfig(
            name="quotes-all",
            symbols=universe.ALL_ETFS,
            cadence="daily",
            batch_size=settings.DAILY_BATCH_SIZE,
            quote_ttl=timedelta(seconds=settings.DAILY_QUOTE_TTL_SECONDS),
        ),
        TierConfig(
            name="historical",
            symbols=universe.ALL_ETFS,
            cadence="daily",
            fetch_quotes=False,
            fetch_historical=True,
            batch_size=settings.DAILY_BATCH_SIZE,
        ),
    ]
    return {t.name: t for t in tiers}


class UnknownTierError(KeyError):
    pass


# ── Run bookkeeping ───────────────────────────────────────

@dataclass
class _RunState:
    tier: TierConfig
    started: float
    is_first_fetch: Optional[bool] = None
    results: Dict[str, CollectionResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    fetch_count: int = 0
    calls: int = 0
    pending_pause: Optional[float] = None

    def ok(self, collection: str) -> None:
        self.results.setdefault(collection, CollectionResult()).success += 1

    def fail(self, collection: str, message: str) -> None:
        self.results.setdefault(collection, CollectionResult()).failed += 1
        self.errors.append(message)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class FetchOrchestrator:

    def __init__(
        self,
        settings: DataServiceSettings,
        cache: CacheLayer,
        client: PolygonClient,
        gate: MarketHoursGate,
        run_lock: Optional[TierRunLock] = None,
        ai_manager: Optional[AIServiceManager] = None,
        tiers: Optional[Dict[str, TierConfig]] = None,
        processing: Optional[ProcessingLayer] = None,
        analysis: Optional[AnalysisLayer] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = _utcnow,
    ):
        self._settings = settings
        self._cache = cache
        self._client = client
        self._gate = gate
        self._lock = run_lock or TierRunLock()
        self._ai = ai_manager
        self._tiers = tiers or default_tiers(settings)
        self._processing = processing or ProcessingLayer()
        self._analysis = analysis or AnalysisLayer(self._processing)
        self._heuristic = HeuristicProvider()
        self._sleep = sleep
        self._clock = clock

    @property
    def tiers(self) -> Dict[str, TierConfig]:
        return dict(self._tiers)

    # ── entry point ───────────────────────────────────────

    async def run(self, tier_name: str, force: bool = False) -> RunSummary:
        tier = self._tiers.get(tier_name)
        if tier is None:
            raise UnknownTierError(tier_name)

        now = self._clock()
        market_status = self._gate.status_message(now)
        if tier.gated and not force and not self._gate.is_open(now):
            logger.info(f"Skipping {tier.name}: {market_status}")
            return RunSummary(
                tier=tier.name,
                status=RunStatus.SKIPPED,
                message=f"Skipped: {market_status}",
                timestamp=now,
                market_status=market_status,
            )

        if not await self._lock.acquire(tier.name):
            logger.warning(f"Skipping {tier.name}: a run is already in progress")
            return RunSummary(
                tier=tier.name,
                status=RunStatus.SKIPPED,
                message="Skipped: a run for this tier is already in progress",
                timestamp=now,
                market_status=market_status,
            )

        try:
            return await self._execute(tier, market_status)
        finally:
            await self._lock.release(tier.name)

    async def _execute(self, tier: TierConfig, market_status: str) -> RunSummary:
        state = _RunState(tier=tier, started=time.monotonic())
        logger.info(f"🚀 Fetch run {tier.name}: {len(tier.symbols)} symbols ({market_status})")
        try:
            return await self._walk(state, market_status)
        except Exception as exc:
            logger.error(f"Fetch run {tier.name} failed: {exc}", exc_info=True)
            errors = state.errors + [str(exc)]
            await self._cache.run_logs.record(FetchRunLog(
                tier=tier.name,
                symbols=tier.symbols,
                status=RunStatus.FAILED,
                fetch_count=state.fetch_count,
                duration_ms=state.duration_ms,
                error_message=str(exc),
                created_at=self._clock(),
            ))
            return RunSummary(
                tier=tier.name,
                status=RunStatus.FAILED,
                message=f"Fetch run failed: {exc}",
                is_first_fetch=state.is_first_fetch,
                fetch_count=state.fetch_count,
                failure_count=len(errors),
                results=state.results,
                errors=errors,
                duration_ms=state.duration_ms,
                timestamp=self._clock(),
                market_status=market_status,
            )

    async def _walk(self, state: _RunState, market_status: str) -> RunSummary:
        tier = state.tier
        if tier.fetch_historical:
            state.is_first_fetch = not await self._any_history(tier.symbols)
            mode = "first fetch (full window)" if state.is_first_fetch else "incremental"
            logger.info(f"{tier.name}: historical mode {mode}")

        size = max(1, tier.batch_size)
        batches = [tier.symbols[i:i + size] for i in range(0, len(tier.symbols), size)]
        for index, batch in enumerate(batches):
            if index:
                state.pending_pause = self._settings.BATCH_DELAY_SECONDS
            logger.info(f"{tier.name}: batch {index + 1}/{len(batches)} ({', '.join(batch)})")
            for symbol in batch:
                if await self._fetch_symbol(state, symbol):
                    state.fetch_count += 1

        if tier.refresh_top_picks:
            try:
                picks = await self.refresh_top_picks(tier.symbols)
                state.ok(TOP_PICKS)
                logger.info(f"Top picks refreshed ({len(picks)} ranked)")
            except Exception as exc:
                logger.error(f"Top picks refresh failed: {exc}", exc_info=True)
                state.fail(TOP_PICKS, f"Top picks: {exc}")

        status = RunStatus.SUCCESS if not state.errors else RunStatus.PARTIAL
        # nothing after the run log may raise, or the run would be logged twice
        cache_stats = await self._cache_stats()
        await self._cache.run_logs.record(FetchRunLog(
            tier=tier.name,
            symbols=tier.symbols,
            status=status,
            fetch_count=state.fetch_count,
            duration_ms=state.duration_ms,
            error_message="; ".join(state.errors) or None,
            created_at=self._clock(),
        ))
        logger.info(
            f"✅ Fetch run {tier.name} {status.value}: {state.fetch_count}/{len(tier.symbols)} symbols, "
            f"{len(state.errors)} error(s), {state.duration_ms}ms"
        )
        return RunSummary(
            tier=tier.name,
            status=status,
            message=f"Fetched {state.fetch_count}/{len(tier.symbols)} symbols",
            is_first_fetch=state.is_first_fetch,
            fetch_count=state.fetch_count,
            failure_count=len(state.errors),
            results=state.results,
            errors=state.errors,
            duration_ms=state.duration_ms,
            timestamp=self._clock(),
            market_status=market_status,
            cache_stats=cache_stats,
        )

    async def _cache_stats(self) -> Optional[Dict[str, int]]:
        try:
            return await self._cache.stats()
        except Exception as exc:
            logger.warning(f"⚠️ Cache stats unavailable: {exc}")
            return None

    # ── per-symbol work ───────────────────────────────────

    async def _pace(self, state: _RunState) -> None:
        """Wait before every upstream call except the first of the run"""
        if state.calls:
            pause = state.pending_pause if state.pending_pause is not None else self._settings.RATE_LIMIT_DELAY_SECONDS
            await self._sleep(pause)
        state.pending_pause = None
        state.calls += 1

    async def _any_history(self, symbols: Sequence[str]) -> bool:
        for symbol in symbols:
            if await self._cache.historical.get(symbol) is not None:
                return True
        return False

    async def _fetch_symbol(self, state: _RunState, symbol: str) -> bool:
        tier = state.tier
        succeeded = True

        if tier.fetch_quotes:
            try:
                await self._pace(state)
                quote = await self._client.fetch_latest_quote(symbol)
                if quote is None:
                    state.fail(QUOTES, f"{symbol}: No quote data available")
                    succeeded = False
                else:
                    await self._pace(state)
                    previous = await self._client.fetch_previous_close(symbol)
                    record = self._processing.build_quote_record(quote, previous)
                    await self._cache.quotes.set(symbol, record, tier.quote_ttl)
                    state.ok(QUOTES)
            except Exception as exc:
                logger.warning(f"Quote fetch failed for {symbol}: {exc}")
                state.fail(QUOTES, f"{symbol}: {exc}")
                succeeded = False

        if tier.fetch_historical:
            try:
                first = state.is_first_fetch or await self._cache.historical.get(symbol) is None
                days = (
                    self._settings.HISTORICAL_DAYS_FIRST_FETCH if first
                    else self._settings.HISTORICAL_DAYS_INCREMENTAL
                )
                end = self._clock().date()
                start = end - timedelta(days=days)
                await self._pace(state)
                raw = await self._client.fetch_aggregates(symbol, start, end)
                bars = self._processing.normalize_bars(raw)
                if not bars:
                    state.fail(HISTORICAL, f"{symbol}: No historical data available")
                    succeeded = False
                else:
                    await self._cache.historical.set(
                        symbol, "day", bars, start, end,
                        is_first_fetch=first,
                        ttl=timedelta(seconds=self._settings.HISTORICAL_TTL_SECONDS),
                    )
                    state.ok(HISTORICAL)
            except Exception as exc:
                logger.warning(f"Historical fetch failed for {symbol}: {exc}")
                state.fail(HISTORICAL, f"{symbol}: {exc}")
                succeeded = False

        return succeeded

    # ── derived data ──────────────────────────────────────

    async def refresh_top_picks(self, symbols: Sequence[str]) -> List[TopPick]:
        """Score the cached quotes/series, rank them and replace the board"""
        candidates = []
        for symbol in symbols:
            quote_entry = await self._cache.quotes.get(symbol)
            series_entry = await self._cache.historical.get(symbol)
            bars: List[Bar] = series_entry.payload.bars if series_entry else []
            snapshot = self._analysis.build_snapshot(
                symbol,
                universe.etf_name(symbol),
                quote_entry.payload if quote_entry else None,
                bars,
            )
            if snapshot is not None:
                candidates.append((symbol, snapshot, bars))

        if not candidates:
            raise RuntimeError("No cached market data to rank")

        scores: Dict[str, AnalysisResult] = {}
        if self._ai is not None and self._ai.initialized:
            scores = await self._ai.batch_analyze([(s, snap) for s, snap, _ in candidates])

        picks = []
        for symbol, snapshot, bars in candidates:
            result = scores.get(symbol) or self._heuristic.score(symbol, snapshot)
            history, week_change = self._processing.weekly_history(bars)
            picks.append(TopPick(
                symbol=symbol,
                name=snapshot.name,
                price=round(snapshot.current_price, 2),
                change=round(snapshot.change, 2),
                change_percent=round(snapshot.change_percent, 2),
                ai_score=result.score,
                signal=result.signal.value,
                risk_level=result.risk_level.value,
                weekly_history=history,
                week_change=week_change,
                provider=result.provider,
            ))

        ranked = self._processing.rank_picks(picks)
        await self._cache.top_picks.set(ranked, timedelta(seconds=self._settings.TOP_PICKS_TTL_SECONDS))
        return ranked

    async def refresh_quote(self, symbol: str) -> Optional[CacheEntry[QuoteRecord]]:
        """On-demand single quote refresh for the read path"""
        quote = await self._client.fetch_latest_quote(symbol)
        if quote is None:
            return None
        previous = await self._client.fetch_previous_close(symbol)
        record = self._processing.build_quote_record(quote, previous)
        return await self._cache.quotes.set(symbol, record, timedelta(seconds=self._settings.QUOTE_TTL_SECONDS))
