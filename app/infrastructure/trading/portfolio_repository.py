"""
Adapter: Portfolio persistence.

Implements PortfolioRepository port.
A portfolio row and its position rows are always written together
in one transaction.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection, Engine

from app.domain.trading.entities import Portfolio, Position, RiskProfile
from app.domain.trading.ports import PortfolioRepository
from app.infrastructure.trading.schema import (
    orders,
    portfolio_snapshots,
    portfolios,
    positions,
    trades,
    trading_rules,
)

logger = logging.getLogger(__name__)


class PortfolioRepositoryAdapter(PortfolioRepository):
    """Concrete adapter for portfolio data persistence."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, portfolio_id: UUID) -> Optional[Portfolio]:
        """Return a portfolio with its positions, or None if not found."""
        with self._engine.connect() as conn:
            row = conn.execute(
                select(portfolios).where(portfolios.c.id == str(portfolio_id))
            ).first()
            if row is None:
                return None
            return self._load(conn, [row])[0]

    def list_all(self, active_only: bool = False) -> list[Portfolio]:
        query = select(portfolios).order_by(portfolios.c.created_at.asc())
        if active_only:
            query = query.where(portfolios.c.is_active.is_(True))
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
            return self._load(conn, rows)

    def list_holding(self, symbol: str) -> list[Portfolio]:
        holders = select(positions.c.portfolio_id).where(positions.c.symbol == symbol)
        query = select(portfolios).where(portfolios.c.id.in_(holders))
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
            return self._load(conn, rows)

    def save(self, portfolio: Portfolio) -> None:
        """Insert or update the portfolio and replace its positions."""
        pid = str(portfolio.id)
        values = {
            "name": portfolio.name,
            "initial_cash": portfolio.initial_cash,
            "current_cash": portfolio.current_cash,
            "risk_profile": portfolio.risk_profile.value,
            "day_trading_enabled": portfolio.day_trading_enabled,
            "day_trade_count": portfolio.day_trade_count,
            "day_trade_window_start": portfolio.day_trade_window_start,
            "realized_pnl": portfolio.realized_pnl,
            "assigned_strategy": portfolio.assigned_strategy,
            "is_active": portfolio.is_active,
        }
        with self._engine.begin() as conn:
            result = conn.execute(
                update(portfolios).where(portfolios.c.id == pid).values(**values)
            )
            if result.rowcount == 0:
                conn.execute(
                    insert(portfolios).values(
                        id=pid, created_at=portfolio.created_at, **values
                    )
                )
            conn.execute(delete(positions).where(positions.c.portfolio_id == pid))
            if portfolio.positions:
                conn.execute(
                    insert(positions),
                    [
                        {
                            "portfolio_id": pid,
                            "symbol": p.symbol,
                            "quantity": p.quantity,
                            "average_price": p.average_price,
                            "current_price": p.current_price,
                            "opened_at": p.opened_at,
                        }
                        for p in portfolio.positions.values()
                    ],
                )
        logger.debug("Saved portfolio %s (%d positions)", pid, len(portfolio.positions))

    def delete(self, portfolio_id: UUID) -> bool:
        pid = str(portfolio_id)
        with self._engine.begin() as conn:
            # children first; SQLite does not enforce ON DELETE CASCADE by default
            for table in (positions, trades, orders, trading_rules, portfolio_snapshots):
                conn.execute(delete(table).where(table.c.portfolio_id == pid))
            result = conn.execute(delete(portfolios).where(portfolios.c.id == pid))
        return result.rowcount > 0

    @staticmethod
    def _load(conn: Connection, rows) -> list[Portfolio]:
        if not rows:
            return []
        ids = [row.id for row in rows]
        held: dict[str, dict[str, Position]] = {pid: {} for pid in ids}
        for p in conn.execute(
            select(positions).where(positions.c.portfolio_id.in_(ids))
        ).all():
            held[p.portfolio_id][p.symbol] = Position(
                symbol=p.symbol,
                quantity=p.quantity,
                average_price=p.average_price,
                current_price=p.current_price,
                opened_at=p.opened_at,
            )

        return [
            Portfolio(
                id=UUID(row.id),
                name=row.name,
                initial_cash=row.initial_cash,
                current_cash=row.current_cash,
                risk_profile=RiskProfile(row.risk_profile),
                day_trading_enabled=row.day_trading_enabled,
                day_trade_count=row.day_trade_count,
                day_trade_window_start=row.day_trade_window_start,
                realized_pnl=row.realized_pnl,
                assigned_strategy=row.assigned_strategy,
                is_active=row.is_active,
                positions=held[row.id],
                created_at=row.created_at,
            )
            for row in rows
        ]
