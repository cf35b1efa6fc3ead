"""
Adapter: Stock quote repository.

Implements StockQuoteRepository port.
Keeps the latest quote per symbol in the stock_quotes table.
"""

import logging
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine

from app.domain.trading.entities import StockQuote
from app.domain.trading.ports import StockQuoteRepository
from app.infrastructure.trading.schema import stock_quotes

logger = logging.getLogger(__name__)


def _to_quote(row) -> StockQuote:
    return StockQuote(
        symbol=row.symbol,
        price=row.price,
        previous_close=row.previous_close,
        volume=row.volume,
        updated_at=row.updated_at,
    )


class StockQuoteRepositoryAdapter(StockQuoteRepository):
    """SQLAlchemy implementation of the quote store."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, symbol: str) -> Optional[StockQuote]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(stock_quotes).where(stock_quotes.c.symbol == symbol)
            ).first()
        return _to_quote(row) if row else None

    def get_many(self, symbols: list[str]) -> dict[str, StockQuote]:
        if not symbols:
            return {}
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(stock_quotes).where(stock_quotes.c.symbol.in_(symbols))
            ).all()
        return {row.symbol: _to_quote(row) for row in rows}

    def list_symbols(self) -> list[str]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(stock_quotes.c.symbol).order_by(stock_quotes.c.symbol)
            ).all()
        return [row.symbol for row in rows]

    def upsert(self, quote: StockQuote) -> None:
        values = {
            "price": quote.price,
            "previous_close": quote.previous_close,
            "volume": quote.volume,
            "updated_at": quote.updated_at,
        }
        with self._engine.begin() as conn:
            result = conn.execute(
                update(stock_quotes)
                .where(stock_quotes.c.symbol == quote.symbol)
                .values(**values)
            )
            if result.rowcount == 0:
                conn.execute(insert(stock_quotes).values(symbol=quote.symbol, **values))
        logger.debug("Upserted quote %s @ %s", quote.symbol, quote.price)
