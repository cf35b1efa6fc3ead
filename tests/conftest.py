"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database with the trading
schema and a controllable clock. API tests run the real application
with ``get_engine`` and ``get_clock`` overridden and rate limiting off.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.domain.trading.entities import PriceBar
from app.infrastructure.trading.database import init_schema
from app.interfaces.trading.dependencies import get_clock, get_engine
from app.main import app
from app.shared.security.rate_limiting import limiter

# Wednesday 2025-01-15, 10:00 in New York
MARKET_OPEN_NOW = datetime(2025, 1, 15, 15, 0)


class FakeClock:
    """Callable clock returning a settable naive UTC time."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def _make_bars(
    symbol: str,
    closes: list[float],
    start: date = date(2024, 1, 1),
    volume: int = 1_000_000,
) -> list[PriceBar]:
    """Daily bars on consecutive calendar days with the given closes."""
    bars = []
    for i, close in enumerate(closes):
        price = Decimal(str(close))
        bars.append(
            PriceBar(
                symbol=symbol,
                date=start + timedelta(days=i),
                open=price,
                high=price + Decimal("1"),
                low=price - Decimal("1") if price > 1 else price,
                close=price,
                volume=volume,
            )
        )
    return bars


@pytest.fixture
def make_bars():
    return _make_bars


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(MARKET_OPEN_NOW)


@pytest.fixture
def client(engine, clock):
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_clock] = lambda: clock
    limiter.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True
