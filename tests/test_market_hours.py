"""
Market hours gate
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import MARKET_OPEN_UTC, WEEKEND_UTC, FixedClock, make_settings
from etf_data_service.layers.market_hours import MarketHoursGate

NY = ZoneInfo("America/New_York")


def _gate(clock=None) -> MarketHoursGate:
    return MarketHoursGate.from_settings(make_settings(), clock=clock or FixedClock(MARKET_OPEN_UTC))


def _ny(*args) -> datetime:
    return datetime(*args, tzinfo=NY)


class TestIsOpen:
    def setup_method(self):
        self.gate = _gate()

    def test_open_on_weekday_in_hours(self):
        assert self.gate.is_open() is True
        assert self.gate.status_message() == "Market is open"

    def test_closed_on_weekend(self):
        assert self.gate.is_open(WEEKEND_UTC) is False

    def test_closed_on_holiday(self):
        # Independence Day 2025, 10:00 New York
        assert self.gate.is_open(_ny(2025, 7, 4, 10, 0)) is False

    def test_hour_boundaries(self):
        assert self.gate.is_open(_ny(2025, 3, 10, 7, 59)) is False
        assert self.gate.is_open(_ny(2025, 3, 10, 8, 0)) is True
        assert self.gate.is_open(_ny(2025, 3, 10, 17, 59)) is True
        assert self.gate.is_open(_ny(2025, 3, 10, 18, 0)) is False

    def test_evaluated_in_exchange_timezone(self):
        # 13:30 UTC is 09:30 in New York under daylight saving, 08:30 in winter
        assert self.gate.is_open(datetime(2025, 3, 10, 13, 30, tzinfo=timezone.utc)) is True
        assert self.gate.is_open(datetime(2025, 1, 6, 12, 30, tzinfo=timezone.utc)) is False

    def test_naive_datetimes_are_utc(self):
        assert self.gate.is_open(datetime(2025, 3, 10, 15, 0)) is True

    def test_invalid_hours_rejected(self):
        with pytest.raises(ValueError):
            MarketHoursGate(open_hour=18, close_hour=8)


class TestNextOpen:
    def setup_method(self):
        self.gate = _gate()

    def test_before_open_same_day(self):
        assert self.gate.next_open(_ny(2025, 3, 10, 7, 0)) == _ny(2025, 3, 10, 8, 0)
        assert self.gate.status_message(_ny(2025, 3, 10, 7, 0)) == "Market closed, opens in 1h"

    def test_friday_evening_to_monday(self):
        at = _ny(2025, 3, 14, 19, 0)
        assert self.gate.next_open(at) == _ny(2025, 3, 17, 8, 0)
        assert self.gate.status_message(at) == "Market closed, opens in 3d"

    def test_wait_across_spring_forward_counts_elapsed_hours(self):
        # 2026-03-08 clocks jump 02:00 -> 03:00 in New York
        at = datetime(2026, 3, 8, 1, 0, tzinfo=timezone.utc)
        assert self.gate.next_open(at) == _ny(2026, 3, 9, 8, 0)
        assert self.gate.time_until_open(at) == timedelta(hours=35)

        saturday = datetime(2026, 3, 7, 12, 30, tzinfo=timezone.utc)
        assert self.gate.time_until_open(saturday) == timedelta(hours=47, minutes=30)
        assert self.gate.status_message(saturday) == "Market closed, opens in 2d"

    def test_wait_across_fall_back(self):
        # Saturday 19:00 EDT to Monday 08:00 EST: 37h on the wall, 38h elapsed
        at = datetime(2025, 11, 1, 23, 0, tzinfo=timezone.utc)
        assert self.gate.time_until_open(at) == timedelta(hours=38)

    def test_no_wait_while_open(self):
        assert self.gate.time_until_open(MARKET_OPEN_UTC) == timedelta(0)

    def test_skips_holiday_and_weekend(self):
        assert self.gate.next_open(_ny(2025, 7, 3, 19, 0)) == _ny(2025, 7, 7, 8, 0)

    def test_skips_thanksgiving_pair(self):
        assert self.gate.next_open(_ny(2025, 11, 26, 18, 30)) == _ny(2025, 12, 1, 8, 0)

    def test_next_close(self):
        assert self.gate.next_close(_ny(2025, 3, 10, 11, 0)) == _ny(2025, 3, 10, 18, 0)
        assert self.gate.next_close(_ny(2025, 3, 15, 11, 0)) == _ny(2025, 3, 17, 18, 0)

    def test_fallback_when_no_trading_day_in_a_week(self):
        start = date(2025, 3, 10)
        holidays = [(start + timedelta(days=i)).isoformat() for i in range(10)]
        gate = MarketHoursGate(holidays=holidays, clock=FixedClock(MARKET_OPEN_UTC))
        at = MARKET_OPEN_UTC
        assert gate.next_open(at) == at.astimezone(NY) + timedelta(days=7)

    def test_next_open_always_lands_on_an_open_session(self):
        at = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
        end = datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)
        while at < end:
            nxt = self.gate.next_open(at)
            assert nxt > at
            assert self.gate.is_trading_day(nxt.date())
            assert nxt.hour == 8 and nxt.minute == 0
            assert self.gate.is_open(nxt)
            at += timedelta(hours=5)

    def test_status_payload(self):
        status = self.gate.status(WEEKEND_UTC)
        assert status["is_open"] is False
        assert status["timezone"] == "America/New_York"
        assert status["next_open"].startswith("2025-03-17T08:00")
