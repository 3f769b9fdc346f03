"""
Shared test helpers: a settable clock, a recording sleep, an in-process
Polygon stand-in and a settings factory that ignores the local .env.
"""

import os
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

# make the project root importable without installation
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from etf_data_service.config import DataServiceSettings  # noqa: E402
from etf_data_service.layers.acquisition import PolygonAPIError  # noqa: E402
from etf_data_service.models.records import LatestQuote, PreviousClose  # noqa: E402

# Monday 2025-03-10 11:00 America/New_York (EDT)
MARKET_OPEN_UTC = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
# Saturday 2025-03-15 11:00 America/New_York
WEEKEND_UTC = datetime(2025, 3, 15, 15, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> DataServiceSettings:
    values = dict(
        MONGODB_ENABLED=False,
        REDIS_ENABLED=False,
        CRON_SECRET="",
        POLYGON_API_KEY="",
        OPENAI_API_KEY="",
        ANTHROPIC_API_KEY="",
        XAI_API_KEY="",
        RATE_LIMIT_DELAY_SECONDS=12.0,
        BATCH_DELAY_SECONDS=15.0,
    )
    values.update(overrides)
    return DataServiceSettings(_env_file=None, **values)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _epoch_ms(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)


class FakePolygon:
    """Answers every symbol unless told otherwise; records each call"""

    def __init__(
        self,
        failing: Iterable[str] = (),
        absent: Iterable[str] = (),
        prices: Optional[Dict[str, float]] = None,
    ):
        self.failing = set(failing)
        self.absent = set(absent)
        self.prices = prices or {}
        self.calls: List[Tuple[str, str]] = []
        self.windows: List[Tuple[str, date, date]] = []

    def _price(self, symbol: str) -> float:
        return self.prices.get(symbol, 100.0)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def fetch_latest_quote(self, symbol: str):
        self.calls.append(("quote", symbol))
        if symbol in self.failing:
            raise PolygonAPIError("Polygon API error 500: upstream exploded", status_code=500, symbol=symbol)
        if symbol in self.absent:
            return None
        price = self._price(symbol)
        return LatestQuote(symbol=symbol, bid=price - 0.05, ask=price + 0.05, timestamp=1)

    async def fetch_previous_close(self, symbol: str):
        self.calls.append(("prev", symbol))
        return PreviousClose(symbol=symbol, close=self._price(symbol) * 0.99)

    async def fetch_ticker_details(self, symbol: str):
        self.calls.append(("details", symbol))
        if symbol in self.failing:
            raise PolygonAPIError("Polygon API error 500: upstream exploded", status_code=500, symbol=symbol)
        if symbol in self.absent:
            return None
        return {"ticker": symbol, "name": f"{symbol} Fund", "market": "stocks", "type": "ETF"}

    async def fetch_aggregates(self, symbol, start_date, end_date, timespan="day", multiplier=1):
        self.calls.append(("aggs", symbol))
        self.windows.append((symbol, start_date, end_date))
        if symbol in self.failing:
            raise PolygonAPIError("Polygon API error 500: upstream exploded", status_code=500, symbol=symbol)
        if symbol in self.absent:
            return []
        base = self._price(symbol)
        rows = []
        day = start_date
        i = 0
        while day <= end_date:
            close = base + (day - start_date).days * 0.1
            rows.append({"t": _epoch_ms(day), "o": close - 0.2, "h": close + 0.5, "l": close - 0.5, "c": close, "v": 1000 + i})
            day += timedelta(days=1)
            i += 1
        return rows

    async def aclose(self):
        return None


@pytest.fixture
def clock():
    return FixedClock(MARKET_OPEN_UTC)


@pytest.fixture
def settings():
    return make_settings()
