"""
Cache layer over the in-memory record store
"""

from datetime import date, timedelta

import pytest

from conftest import MARKET_OPEN_UTC, FixedClock
from etf_data_service.db.store import DESCENDING, MemoryRecordStore
from etf_data_service.layers.cache import CacheLayer
from etf_data_service.models.records import (
    Bar,
    CacheState,
    FetchRunLog,
    QuoteRecord,
    RunStatus,
    TopPick,
)

DAY_MS = 86_400_000


def _bars(start_ts: int, n: int, base: float = 100.0):
    return [
        Bar(timestamp=start_ts + i * DAY_MS, open=base + i, high=base + i + 1, low=base + i - 1, close=base + i, volume=10)
        for i in range(n)
    ]


def _quote(symbol="VOO", mid=100.0) -> QuoteRecord:
    return QuoteRecord(symbol=symbol, bid=mid - 0.1, ask=mid + 0.1, midpoint=mid)


def _pick(symbol, score) -> TopPick:
    return TopPick(symbol=symbol, name=symbol, price=1.0, ai_score=score, signal="hold", risk_level="medium")


class TestMemoryRecordStore:
    @pytest.mark.asyncio
    async def test_operators_and_sort(self):
        store = MemoryRecordStore()
        for i in range(5):
            await store.insert_one("c", {"key": f"k{i}", "n": i})
        assert await store.count("c", {"n": {"$gte": 3}}) == 2
        rows = await store.find_many("c", {"n": {"$ne": 0}}, sort=[("n", DESCENDING)], limit=2)
        assert [r["n"] for r in rows] == [4, 3]
        assert await store.delete_many("c", {"n": {"$lt": 2}}) == 2
        assert await store.count("c") == 3

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self):
        store = MemoryRecordStore()
        await store.insert_one("c", {"key": "a", "items": [1]})
        doc = await store.find_one("c", {"key": "a"})
        doc["items"].append(2)
        assert (await store.find_one("c", {"key": "a"}))["items"] == [1]


class TestQuoteRepository:
    def setup_method(self):
        self.clock = FixedClock(MARKET_OPEN_UTC)
        self.cache = CacheLayer(MemoryRecordStore(), clock=self.clock)

    @pytest.mark.asyncio
    async def test_upsert_single_entry_per_symbol(self):
        await self.cache.quotes.set("voo", _quote(mid=100.0), timedelta(minutes=35))
        await self.cache.quotes.set("VOO", _quote(mid=101.0), timedelta(minutes=35))
        assert await self.cache.quotes.count() == 1
        entry = await self.cache.quotes.get("VOO")
        assert entry.payload.midpoint == 101.0

    @pytest.mark.asyncio
    async def test_quote_expiring_in_forty_minutes_is_served(self):
        await self.cache.quotes.set("VOO", _quote(), timedelta(minutes=40))
        entry = await self.cache.quotes.get("VOO")
        assert entry is not None
        assert entry.expires_at - self.clock() == timedelta(minutes=40)
        assert self.cache.state_of(entry) == CacheState.FRESH
        assert await self.cache.quotes.exists("VOO") is True

    @pytest.mark.asyncio
    async def test_state_progression(self):
        await self.cache.quotes.set("VOO", _quote(), timedelta(minutes=35))
        entry = await self.cache.quotes.get("VOO")
        self.clock.advance(minutes=29)
        assert self.cache.state_of(entry) == CacheState.FRESH
        self.clock.advance(minutes=2)
        assert self.cache.state_of(entry) == CacheState.STALE
        self.clock.advance(minutes=4)
        assert self.cache.state_of(entry) == CacheState.EXPIRED
        assert await self.cache.quotes.exists("VOO") is False
        # expired entries are still readable
        assert await self.cache.quotes.get("VOO") is not None

    @pytest.mark.asyncio
    async def test_get_all_fresh_and_delete_expired(self):
        await self.cache.quotes.set("VOO", _quote("VOO"), timedelta(minutes=10))
        await self.cache.quotes.set("QQQ", _quote("QQQ"), timedelta(hours=25))
        self.clock.advance(minutes=11)
        fresh = await self.cache.quotes.get_all_fresh()
        assert [e.key for e in fresh] == ["QQQ"]
        assert await self.cache.quotes.delete_expired() == 1
        assert await self.cache.quotes.get("VOO") is None


class TestHistoricalRepository:
    def setup_method(self):
        self.clock = FixedClock(MARKET_OPEN_UTC)
        self.cache = CacheLayer(MemoryRecordStore(), clock=self.clock)
        self.ttl = timedelta(hours=25)

    @pytest.mark.asyncio
    async def test_first_fetch_creates(self):
        entry = await self.cache.historical.set(
            "VOO", "day", _bars(0, 5), date(2025, 1, 1), date(2025, 1, 5), is_first_fetch=True, ttl=self.ttl
        )
        assert entry.key == "VOO:day"
        assert len(entry.payload.bars) == 5
        assert await self.cache.historical.exists("VOO") is True

    @pytest.mark.asyncio
    async def test_incremental_appends_and_never_rewrites(self):
        original = _bars(0, 5)
        await self.cache.historical.set("VOO", "day", original, date(2025, 1, 1), date(2025, 1, 5), True, self.ttl)

        # overlaps the last cached bar by one day, with a different close
        overlap = Bar(timestamp=4 * DAY_MS, open=1, high=1, low=1, close=1, volume=1)
        new = _bars(5 * DAY_MS, 2, base=200.0)
        entry = await self.cache.historical.set(
            "VOO", "day", [overlap] + new, date(2025, 1, 5), date(2025, 1, 7), False, self.ttl
        )

        bars = entry.payload.bars
        assert bars[:5] == original
        assert bars[5:] == new
        assert entry.payload.window_start == date(2025, 1, 1)
        assert entry.payload.window_end == date(2025, 1, 7)
        assert await self.cache.historical.count() == 1

    @pytest.mark.asyncio
    async def test_incremental_refreshes_expiry(self):
        await self.cache.historical.set("VOO", "day", _bars(0, 2), date(2025, 1, 1), date(2025, 1, 2), True, self.ttl)
        self.clock.advance(hours=24)
        entry = await self.cache.historical.set(
            "VOO", "day", _bars(2 * DAY_MS, 1), date(2025, 1, 2), date(2025, 1, 3), False, self.ttl
        )
        assert entry.fetched_at == self.clock()
        assert entry.expires_at == self.clock() + self.ttl

    @pytest.mark.asyncio
    async def test_first_fetch_replaces_everything(self):
        await self.cache.historical.set("VOO", "day", _bars(0, 30), date(2025, 1, 1), date(2025, 1, 30), True, self.ttl)
        fresh = _bars(100 * DAY_MS, 3, base=50.0)
        entry = await self.cache.historical.set(
            "VOO", "day", fresh, date(2025, 4, 10), date(2025, 4, 12), True, self.ttl
        )
        assert entry.payload.bars == fresh
        assert entry.payload.window_start == date(2025, 4, 10)
        stored = await self.cache.historical.get("VOO")
        assert stored.payload.bars == fresh

    @pytest.mark.asyncio
    async def test_incremental_without_prior_entry_creates(self):
        entry = await self.cache.historical.set(
            "QQQ", "day", _bars(0, 2), date(2025, 1, 1), date(2025, 1, 2), False, self.ttl
        )
        assert len(entry.payload.bars) == 2
        assert await self.cache.historical.get("QQQ") is not None

    @pytest.mark.asyncio
    async def test_granularities_are_separate_keys(self):
        await self.cache.historical.set("VOO", "day", _bars(0, 2), date(2025, 1, 1), date(2025, 1, 2), True, self.ttl)
        assert await self.cache.historical.get("VOO", "hour") is None


class TestTopPicksAndRunLog:
    def setup_method(self):
        self.clock = FixedClock(MARKET_OPEN_UTC)
        self.cache = CacheLayer(MemoryRecordStore(), clock=self.clock)

    @pytest.mark.asyncio
    async def test_only_latest_snapshot_retained(self):
        await self.cache.top_picks.set([_pick("VOO", 80)], timedelta(minutes=35))
        self.clock.advance(minutes=30)
        await self.cache.top_picks.set([_pick("QQQ", 90), _pick("VOO", 70)], timedelta(minutes=35))
        assert await self.cache.top_picks.count() == 1
        entry = await self.cache.top_picks.get()
        assert [p.symbol for p in entry.payload.picks] == ["QQQ", "VOO"]
        assert entry.fetched_at == self.clock()

    @pytest.mark.asyncio
    async def test_run_log_recent_newest_first(self):
        for i, status in enumerate([RunStatus.SUCCESS, RunStatus.PARTIAL, RunStatus.FAILED]):
            await self.cache.run_logs.record(FetchRunLog(
                tier="quotes", symbols=["VOO"], status=status, fetch_count=i,
                duration_ms=10, created_at=self.clock(),
            ))
            self.clock.advance(minutes=1)
        recent = await self.cache.run_logs.recent(limit=2)
        assert [r.status for r in recent] == [RunStatus.FAILED, RunStatus.PARTIAL]

    @pytest.mark.asyncio
    async def test_cleanup_and_stats(self):
        await self.cache.quotes.set("VOO", _quote(), timedelta(minutes=5))
        await self.cache.quotes.set("QQQ", _quote("QQQ"), timedelta(hours=1))
        await self.cache.top_picks.set([_pick("VOO", 50)], timedelta(minutes=5))
        self.clock.advance(minutes=10)

        deleted = await self.cache.cleanup_expired()
        assert deleted == {"quotes": 1, "historical": 0, "top_picks": 1, "run_logs": 0}
        stats = await self.cache.stats()
        assert stats["quotes"] == 1
        assert stats["top_picks"] == 0
