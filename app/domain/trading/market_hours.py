"""
Domain service: US equity market hours.

Pure calendar logic for the NYSE trading day. No IO.

All datetimes entering or leaving this module are naive UTC.
Internally they are converted to the exchange timezone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from app.domain.trading.entities import utc_now
from app.domain.trading.errors import MarketClosedError

EXCHANGE_TIMEZONE = "America/New_York"

# Full-day NYSE closures.
NYSE_HOLIDAYS: frozenset[date] = frozenset(
    {
        # 2024
        date(2024, 1, 1),
        date(2024, 1, 15),
        date(2024, 2, 19),
        date(2024, 3, 29),
        date(2024, 5, 27),
        date(2024, 6, 19),
        date(2024, 7, 4),
        date(2024, 9, 2),
        date(2024, 11, 28),
        date(2024, 12, 25),
        # 2025
        date(2025, 1, 1),
        date(2025, 1, 9),
        date(2025, 1, 20),
        date(2025, 2, 17),
        date(2025, 4, 18),
        date(2025, 5, 26),
        date(2025, 6, 19),
        date(2025, 7, 4),
        date(2025, 9, 1),
        date(2025, 11, 27),
        date(2025, 12, 25),
        # 2026
        date(2026, 1, 1),
        date(2026, 1, 19),
        date(2026, 2, 16),
        date(2026, 4, 3),
        date(2026, 5, 25),
        date(2026, 6, 19),
        date(2026, 7, 3),
        date(2026, 9, 7),
        date(2026, 11, 26),
        date(2026, 12, 25),
    }
)

# Sessions that close at 13:00 local time.
NYSE_EARLY_CLOSES: frozenset[date] = frozenset(
    {
        date(2024, 7, 3),
        date(2024, 11, 29),
        date(2024, 12, 24),
        date(2025, 7, 3),
        date(2025, 11, 28),
        date(2025, 12, 24),
        date(2026, 11, 27),
        date(2026, 12, 24),
    }
)

EARLY_CLOSE_TIME = time(13, 0)


class MarketSession(str, Enum):
    """Trading session the market is currently in."""

    OPEN = "open"
    CLOSED = "closed"
    PRE_MARKET = "pre-market"
    AFTER_HOURS = "after-hours"


@dataclass(frozen=True)
class TradingSchedule:
    """Exchange session boundaries in local exchange time."""

    timezone: str = EXCHANGE_TIMEZONE
    regular_open: time = time(9, 30)
    regular_close: time = time(16, 0)
    pre_market_open: time = time(4, 0)
    after_hours_close: time = time(20, 0)
    allow_pre_market: bool = False
    allow_after_hours: bool = False


@dataclass(frozen=True)
class MarketStatus:
    """Snapshot of the market state at a given instant."""

    is_open: bool
    session: MarketSession
    next_open: Optional[datetime]
    next_close: Optional[datetime]
    reason: str


class MarketHoursService:
    """Answers whether the exchange is open and when it next opens or closes."""

    def __init__(
        self,
        schedule: Optional[TradingSchedule] = None,
        holidays: frozenset[date] = NYSE_HOLIDAYS,
        early_closes: frozenset[date] = NYSE_EARLY_CLOSES,
    ) -> None:
        self._schedule = schedule or TradingSchedule()
        self._tz = ZoneInfo(self._schedule.timezone)
        self._holidays = holidays
        self._early_closes = early_closes

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5 and day not in self._holidays

    def is_early_close(self, day: date) -> bool:
        return day in self._early_closes

    def close_time(self, day: date) -> time:
        if self.is_early_close(day):
            return EARLY_CLOSE_TIME
        return self._schedule.regular_close

    def get_market_status(self, now: Optional[datetime] = None) -> MarketStatus:
        """Return the market status at ``now`` (defaults to the current time)."""
        local = self._to_local(now or utc_now())
        today = local.date()
        t = local.time()

        if not self.is_trading_day(today):
            reason = (
                "Market closed for weekend"
                if today.weekday() >= 5
                else "Market closed for holiday"
            )
            return self._closed_status(local, reason)

        schedule = self._schedule
        close = self.close_time(today)

        if schedule.regular_open <= t < close:
            return MarketStatus(
                is_open=True,
                session=MarketSession.OPEN,
                next_open=self._next_open_after(local),
                next_close=self._to_utc(self._at(today, close)),
                reason="Market is open",
            )

        if schedule.pre_market_open <= t < schedule.regular_open:
            return MarketStatus(
                is_open=schedule.allow_pre_market,
                session=MarketSession.PRE_MARKET,
                next_open=self._to_utc(self._at(today, schedule.regular_open)),
                next_close=self._to_utc(self._at(today, close)),
                reason="Pre-market session",
            )

        if close <= t < schedule.after_hours_close:
            next_open = self._next_open_after(local)
            return MarketStatus(
                is_open=schedule.allow_after_hours,
                session=MarketSession.AFTER_HOURS,
                next_open=next_open,
                next_close=self._next_close_after(local),
                reason="After-hours session",
            )

        return self._closed_status(local, "Market is closed")

    def is_market_open(self, now: Optional[datetime] = None) -> bool:
        return self.get_market_status(now).is_open

    def ensure_market_open(self, now: Optional[datetime] = None) -> None:
        """Raise MarketClosedError unless trading is allowed at ``now``."""
        status = self.get_market_status(now)
        if status.is_open:
            return
        message = status.reason
        if status.next_open is not None:
            message += f". Next open: {status.next_open.isoformat()} UTC"
        raise MarketClosedError(message)

    def next_session_close(self, after: datetime) -> datetime:
        """Return the first regular session close at or after ``after``.

        A DAY order created at ``after`` stays working until this instant.
        """
        local = self._to_local(after)
        day = local.date()
        if self.is_trading_day(day) and local.time() < self.close_time(day):
            return self._to_utc(self._at(day, self.close_time(day)))
        return self._next_close_after(local)

    # ── internals ────────────────────────────────────────────

    def _closed_status(self, local: datetime, reason: str) -> MarketStatus:
        return MarketStatus(
            is_open=False,
            session=MarketSession.CLOSED,
            next_open=self._next_open_after(local),
            next_close=self._next_close_after(local),
            reason=reason,
        )

    def _next_trading_day(self, day: date) -> date:
        candidate = day + timedelta(days=1)
        while not self.is_trading_day(candidate):
            candidate += timedelta(days=1)
        return candidate

    def _next_open_after(self, local: datetime) -> datetime:
        day = local.date()
        if self.is_trading_day(day) and local.time() < self._schedule.regular_open:
            return self._to_utc(self._at(day, self._schedule.regular_open))
        nxt = self._next_trading_day(day)
        return self._to_utc(self._at(nxt, self._schedule.regular_open))

    def _next_close_after(self, local: datetime) -> datetime:
        day = local.date()
        if self.is_trading_day(day) and local.time() < self.close_time(day):
            return self._to_utc(self._at(day, self.close_time(day)))
        nxt = self._next_trading_day(day)
        return self._to_utc(self._at(nxt, self.close_time(nxt)))

    def _at(self, day: date, t: time) -> datetime:
        return datetime.combine(day, t, tzinfo=self._tz)

    def _to_local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self._tz)

    @staticmethod
    def _to_utc(value: datetime) -> datetime:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
