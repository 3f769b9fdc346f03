"""
Market hours gate.
All calendar arithmetic happens in the exchange timezone, whatever the host
timezone is. The clock is injected so the gate stays deterministic in tests.
"""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from etf_data_service.config import DataServiceSettings

Clock = Callable[[], datetime]

_MAX_SCAN_DAYS = 7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketHoursGate:
    def __init__(
        self,
        open_hour: int = 8,
        close_hour: int = 18,
        tz: str = "America/New_York",
        holidays: Iterable[str] = (),
        clock: Clock = utcnow,
    ):
        if not 0 <= open_hour < close_hour <= 24:
            raise ValueError(f"invalid market hours: {open_hour}-{close_hour}")
        self.open_hour = open_hour
        self.close_hour = close_hour
        self.tz = ZoneInfo(tz)
        self.holidays = {date.fromisoformat(d) for d in holidays}
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: DataServiceSettings, clock: Clock = utcnow) -> "MarketHoursGate":
        return cls(
            open_hour=settings.MARKET_OPEN_HOUR,
            close_hour=settings.MARKET_CLOSE_HOUR,
            tz=settings.MARKET_TIMEZONE,
            holidays=settings.MARKET_HOLIDAYS,
            clock=clock,
        )

    def _local(self, at: Optional[datetime]) -> datetime:
        moment = at or self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz)

    def _at_hour(self, day: date, hour: int) -> datetime:
        if hour == 24:
            return datetime.combine(day + timedelta(days=1), time(0), tzinfo=self.tz)
        return datetime.combine(day, time(hour), tzinfo=self.tz)

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5 and day not in self.holidays

    def is_open(self, at: Optional[datetime] = None) -> bool:
        local = self._local(at)
        if not self.is_trading_day(local.date()):
            return False
        return self.open_hour <= local.hour < self.close_hour

    def next_open(self, at: Optional[datetime] = None) -> datetime:
        """Opening instant of the next trading session, in exchange time"""
        local = self._local(at)
        today = local.date()
        if self.is_trading_day(today) and local.hour < self.open_hour:
            return self._at_hour(today, self.open_hour)
        for offset in range(1, _MAX_SCAN_DAYS + 1):
            day = today + timedelta(days=offset)
            if self.is_trading_day(day):
                return self._at_hour(day, self.open_hour)
        return local + timedelta(days=_MAX_SCAN_DAYS)

    def next_close(self, at: Optional[datetime] = None) -> datetime:
        local = self._local(at)
        if self.is_open(local):
            return self._at_hour(local.date(), self.close_hour)
        return self._at_hour(self.next_open(local).date(), self.close_hour)

    def time_until_open(self, at: Optional[datetime] = None) -> timedelta:
        """Elapsed time to the next open; zero while open"""
        local = self._local(at)
        if self.is_open(local):
            return timedelta(0)
        # same-tzinfo subtraction is wall-clock; go through UTC to count a DST hour
        return self.next_open(local).astimezone(timezone.utc) - local.astimezone(timezone.utc)

    def status_message(self, at: Optional[datetime] = None) -> str:
        local = self._local(at)
        if self.is_open(local):
            return "Market is open"
        hours = math.ceil(self.time_until_open(local).total_seconds() / 3600)
        if hours < 24:
            return f"Market closed, opens in {hours}h"
        return f"Market closed, opens in {math.ceil(hours / 24)}d"

    def status(self, at: Optional[datetime] = None) -> dict:
        local = self._local(at)
        return {
            "is_open": self.is_open(local),
            "next_open": self.next_open(local).isoformat(),
            "next_close": self.next_close(local).isoformat(),
            "message": self.status_message(local),
            "timezone": str(self.tz),
        }
