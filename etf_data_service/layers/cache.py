"""
Layer 2 – cache
TTL repositories for quotes, historical series, the top-picks snapshot and
the fetch run log, all sitting on one RecordStore.

Document layout: {key, payload, fetched_at, expires_at}. Quote and
historical keys are upserted (one live entry per key); the top-picks
snapshot is a single document replaced wholesale.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from etf_data_service.db.store import DESCENDING, RecordStore
from etf_data_service.models.records import (
    Bar,
    CacheEntry,
    CacheState,
    FetchRunLog,
    HistoricalSeries,
    QuoteRecord,
    RankedSnapshot,
    TopPick,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

QUOTE_COLLECTION = "quote"
HISTORICAL_COLLECTION = "historical"
TOP_PICKS_COLLECTION = "topPicks"
RUN_LOG_COLLECTION = "runLog"

_TOP_PICKS_KEY = "latest"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── TTL predicates ────────────────────────────────────────

def is_expired(expires_at: datetime, now: datetime) -> bool:
    return now >= expires_at


def is_stale(expires_at: datetime, now: datetime, window: timedelta) -> bool:
    return expires_at - now < window


def cache_state(expires_at: datetime, now: datetime, window: timedelta) -> CacheState:
    if is_expired(expires_at, now):
        return CacheState.EXPIRED
    if is_stale(expires_at, now, window):
        return CacheState.STALE
    return CacheState.FRESH


def _document(key: str, payload, fetched_at: datetime, ttl: timedelta, **extra) -> dict:
    doc = {
        "key": key,
        "payload": payload.model_dump(mode="json"),
        "fetched_at": fetched_at,
        "expires_at": fetched_at + ttl,
    }
    doc.update(extra)
    return doc


# ── Repositories ──────────────────────────────────────────

class _Repository:
    collection = ""

    def __init__(self, store: RecordStore, clock: Clock = _utcnow):
        self._store = store
        self._clock = clock

    async def delete_expired(self) -> int:
        return await self._store.delete_expired(self.collection, self._clock())

    async def count(self) -> int:
        return await self._store.count(self.collection)


class QuoteRepository(_Repository):
    collection = QUOTE_COLLECTION

    async def get(self, symbol: str) -> Optional[CacheEntry[QuoteRecord]]:
        doc = await self._store.find_one(self.collection, {"key": symbol.upper()})
        return CacheEntry[QuoteRecord].model_validate(doc) if doc else None

    async def set(self, symbol: str, record: QuoteRecord, ttl: timedelta) -> CacheEntry[QuoteRecord]:
        key = symbol.upper()
        doc = _document(key, record, self._clock(), ttl, symbol=key)
        await self._store.replace_one(self.collection, {"key": key}, doc)
        return CacheEntry[QuoteRecord].model_validate(doc)

    async def exists(self, symbol: str) -> bool:
        entry = await self.get(symbol)
        return entry is not None and not is_expired(entry.expires_at, self._clock())

    async def get_all_fresh(self) -> List[CacheEntry[QuoteRecord]]:
        docs = await self._store.find_many(self.collection, {"expires_at": {"$gt": self._clock()}})
        return [CacheEntry[QuoteRecord].model_validate(d) for d in docs]


class HistoricalRepository(_Repository):
    collection = HISTORICAL_COLLECTION

    @staticmethod
    def key(symbol: str, granularity: str) -> str:
        return f"{symbol.upper()}:{granularity}"

    async def get(self, symbol: str, granularity: str = "day") -> Optional[CacheEntry[HistoricalSeries]]:
        doc = await self._store.find_one(self.collection, {"key": self.key(symbol, granularity)})
        return CacheEntry[HistoricalSeries].model_validate(doc) if doc else None

    async def exists(self, symbol: str, granularity: str = "day") -> bool:
        entry = await self.get(symbol, granularity)
        return entry is not None and not is_expired(entry.expires_at, self._clock())

    async def set(
        self,
        symbol: str,
        granularity: str,
        bars: Sequence[Bar],
        window_start: date,
        window_end: date,
        is_first_fetch: bool,
        ttl: timedelta,
    ) -> CacheEntry[HistoricalSeries]:
        """
        First fetch: replace whatever is cached with the new window.
        Incremental: append to the cached series, leaving earlier bars and
        window_start untouched. Bars not newer than the cached tail are
        dropped so overlapping windows never duplicate a bar.
        """
        key = self.key(symbol, granularity)
        now = self._clock()

        if is_first_fetch:
            await self._store.delete_many(self.collection, {"key": key})
            return await self._create(key, symbol, granularity, bars, window_start, window_end, now, ttl)

        existing = await self.get(symbol, granularity)
        if existing is None:
            return await self._create(key, symbol, granularity, bars, window_start, window_end, now, ttl)

        series = existing.payload
        tail = series.last_timestamp
        appended = [b for b in bars if tail is None or b.timestamp > tail]
        skipped = len(bars) - len(appended)
        if skipped:
            logger.debug(f"{key}: skipped {skipped} bar(s) already cached")

        merged = series.model_copy(update={
            "bars": list(series.bars) + list(appended),
            "window_end": max(series.window_end, window_end),
        })
        doc = _document(key, merged, now, ttl, symbol=symbol.upper(), granularity=granularity)
        await self._store.replace_one(self.collection, {"key": key}, doc)
        return CacheEntry[HistoricalSeries].model_validate(doc)

    async def _create(self, key, symbol, granularity, bars, window_start, window_end, now, ttl):
        series = HistoricalSeries(
            symbol=symbol.upper(),
            granularity=granularity,
            bars=list(bars),
            window_start=window_start,
            window_end=window_end,
        )
        doc = _document(key, series, now, ttl, symbol=symbol.upper(), granularity=granularity)
        await self._store.insert_one(self.collection, doc)
        return CacheEntry[HistoricalSeries].model_validate(doc)


class TopPicksRepository(_Repository):
    collection = TOP_PICKS_COLLECTION

    async def get(self) -> Optional[CacheEntry[RankedSnapshot]]:
        doc = await self._store.find_one(self.collection, {"key": _TOP_PICKS_KEY})
        return CacheEntry[RankedSnapshot].model_validate(doc) if doc else None

    async def exists(self) -> bool:
        entry = await self.get()
        return entry is not None and not is_expired(entry.expires_at, self._clock())

    async def set(self, picks: Sequence[TopPick], ttl: timedelta) -> CacheEntry[RankedSnapshot]:
        # one document, so readers see either the old board or the new one
        doc = _document(_TOP_PICKS_KEY, RankedSnapshot(picks=list(picks)), self._clock(), ttl)
        await self._store.replace_one(self.collection, {"key": _TOP_PICKS_KEY}, doc)
        return CacheEntry[RankedSnapshot].model_validate(doc)


class RunLogRepository(_Repository):
    collection = RUN_LOG_COLLECTION

    def __init__(self, store: RecordStore, retention: timedelta, clock: Clock = _utcnow):
        super().__init__(store, clock)
        self._retention = retention

    async def record(self, log: FetchRunLog) -> None:
        doc = log.model_dump(mode="python")
        doc["status"] = log.status.value
        doc["expires_at"] = log.created_at + self._retention
        await self._store.insert_one(self.collection, doc)

    async def recent(self, limit: int = 20, tier: Optional[str] = None) -> List[FetchRunLog]:
        match = {"tier": tier} if tier else None
        docs = await self._store.find_many(
            self.collection, match, sort=[("created_at", DESCENDING)], limit=limit
        )
        return [FetchRunLog.model_validate(d) for d in docs]


# ── Facade ────────────────────────────────────────────────

class CacheLayer:
    """Groups the repositories and the housekeeping operations"""

    def __init__(
        self,
        store: RecordStore,
        staleness_window: timedelta = timedelta(minutes=5),
        run_log_retention: timedelta = timedelta(days=30),
        clock: Clock = _utcnow,
    ):
        self.store = store
        self.staleness_window = staleness_window
        self._clock = clock
        self.quotes = QuoteRepository(store, clock)
        self.historical = HistoricalRepository(store, clock)
        self.top_picks = TopPicksRepository(store, clock)
        self.run_logs = RunLogRepository(store, run_log_retention, clock)

    def state_of(self, entry: CacheEntry) -> CacheState:
        return cache_state(entry.expires_at, self._clock(), self.staleness_window)

    async def cleanup_expired(self) -> Dict[str, int]:
        deleted = {
            "quotes": await self.quotes.delete_expired(),
            "historical": await self.historical.delete_expired(),
            "top_picks": await self.top_picks.delete_expired(),
            "run_logs": await self.run_logs.delete_expired(),
        }
        logger.info(f"Expired cache entries removed: {deleted}")
        return deleted

    async def stats(self) -> Dict[str, int]:
        return {
            "quotes": await self.quotes.count(),
            "historical": await self.historical.count(),
            "top_picks": await self.top_picks.count(),
            "run_logs": await self.run_logs.count(),
        }
