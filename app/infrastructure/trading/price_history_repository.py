"""
Adapter: Price history repository.

Implements PriceHistoryRepository port.
Stores one OHLCV bar per symbol and trading date in price_bars.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine

from app.domain.trading.entities import PriceBar
from app.domain.trading.ports import PriceHistoryRepository
from app.infrastructure.trading.schema import price_bars

logger = logging.getLogger(__name__)


class PriceHistoryRepositoryAdapter(PriceHistoryRepository):
    """SQLAlchemy implementation of the daily bar store."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_history(
        self,
        symbol: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[PriceBar]:
        query = select(price_bars).where(price_bars.c.symbol == symbol)
        if start is not None:
            query = query.where(price_bars.c.date >= start)
        if end is not None:
            query = query.where(price_bars.c.date <= end)
        query = query.order_by(price_bars.c.date.asc())

        with self._engine.connect() as conn:
            rows = conn.execute(query).all()

        return [
            PriceBar(
                symbol=row.symbol,
                date=row.date,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
            )
            for row in rows
        ]

    def save_bars(self, bars: list[PriceBar]) -> int:
        """Replace-then-insert so re-imports overwrite existing bars."""
        if not bars:
            return 0

        # last bar wins when the batch itself has duplicates
        unique = {(b.symbol, b.date): b for b in bars}
        dates_by_symbol: dict[str, list[date]] = {}
        for symbol, day in unique:
            dates_by_symbol.setdefault(symbol, []).append(day)
        rows = [
            {
                "symbol": b.symbol,
                "date": b.date,
                "open": b.open,
                "high": b.high,
                "low": b.low,
                "close": b.close,
                "volume": b.volume,
            }
            for b in unique.values()
        ]

        with self._engine.begin() as conn:
            for symbol, dates in dates_by_symbol.items():
                conn.execute(
                    delete(price_bars).where(
                        price_bars.c.symbol == symbol,
                        price_bars.c.date.in_(dates),
                    )
                )
            conn.execute(insert(price_bars), rows)

        logger.info("Saved %d price bars", len(rows))
        return len(rows)
