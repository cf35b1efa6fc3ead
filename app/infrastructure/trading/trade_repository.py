"""
Adapter: Trade repository.

Implements TradeRepository port over the trades table.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from app.domain.trading.entities import OrderSide, Trade
from app.domain.trading.ports import TradeRepository
from app.infrastructure.trading.schema import trades


def _to_trade(row) -> Trade:
    return Trade(
        id=UUID(row.id),
        portfolio_id=UUID(row.portfolio_id),
        symbol=row.symbol,
        side=OrderSide(row.side),
        quantity=row.quantity,
        price=row.price,
        commission=row.commission,
        realized_pnl=row.realized_pnl,
        executed_at=row.executed_at,
        order_id=UUID(row.order_id) if row.order_id else None,
    )


class TradeRepositoryAdapter(TradeRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(self, trade: Trade) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(trades).values(
                    id=str(trade.id),
                    portfolio_id=str(trade.portfolio_id),
                    symbol=trade.symbol,
                    side=trade.side.value,
                    quantity=trade.quantity,
                    price=trade.price,
                    commission=trade.commission,
                    realized_pnl=trade.realized_pnl,
                    executed_at=trade.executed_at,
                    order_id=str(trade.order_id) if trade.order_id else None,
                )
            )

    def list_for_portfolio(self, portfolio_id: UUID, limit: int = 100) -> list[Trade]:
        query = (
            select(trades)
            .where(trades.c.portfolio_id == str(portfolio_id))
            .order_by(trades.c.executed_at.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            return [_to_trade(row) for row in conn.execute(query).all()]

    def list_between(
        self, portfolio_id: UUID, start: datetime, end: datetime
    ) -> list[Trade]:
        query = (
            select(trades)
            .where(
                trades.c.portfolio_id == str(portfolio_id),
                trades.c.executed_at >= start,
                trades.c.executed_at < end,
            )
            .order_by(trades.c.executed_at.asc())
        )
        with self._engine.connect() as conn:
            return [_to_trade(row) for row in conn.execute(query).all()]
