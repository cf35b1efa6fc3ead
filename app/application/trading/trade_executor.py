"""
Application service: apply a fill to a portfolio and persist it.

Shared by the trade, order and market-tick use cases so that every
fill goes through the same ledger, commission and snapshot path.
"""

import logging
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from app.domain.trading.entities import (
    OrderSide,
    Portfolio,
    PortfolioSnapshot,
    Trade,
)
from app.domain.trading.errors import PortfolioNotFoundError
from app.domain.trading.execution import OrderExecutionService
from app.domain.trading.ledger import PortfolioLedger
from app.domain.trading.ports import (
    PortfolioRepository,
    SnapshotRepository,
    StockQuoteRepository,
    TradeRepository,
)

logger = logging.getLogger(__name__)

# Serializes fills across request and scheduler threads of one process.
FILL_LOCK = threading.RLock()


class TradeExecutor:
    """Runs fills through the ledger and writes trade, portfolio and snapshot."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        trade_repo: TradeRepository,
        snapshot_repo: SnapshotRepository,
        quote_repo: StockQuoteRepository,
        ledger: PortfolioLedger,
        execution: OrderExecutionService,
    ) -> None:
        self._portfolios = portfolio_repo
        self._trades = trade_repo
        self._snapshots = snapshot_repo
        self._quotes = quote_repo
        self._ledger = ledger
        self._execution = execution

    def mark_to_market(self, portfolio: Portfolio) -> Portfolio:
        """Refresh position prices from the latest stored quotes."""
        quotes = self._quotes.get_many(list(portfolio.positions))
        portfolio.mark_to_market({s: q.price for s, q in quotes.items()})
        return portfolio

    def fill(
        self,
        portfolio: Portfolio,
        side: OrderSide,
        symbol: str,
        quantity: int,
        fill_price: Decimal,
        market_price: Decimal,
        at: datetime,
        order_id: Optional[UUID] = None,
    ) -> Trade:
        """Apply a fill and persist the result.

        The ledger runs on the stored portfolio, re-read under FILL_LOCK,
        so a caller holding an older copy cannot overwrite another fill.

        Raises:
            PortfolioNotFoundError: The portfolio was deleted meanwhile.
            InsufficientFundsError, InsufficientPositionError,
            PatternDayTradeError, InvalidOrderError: From the ledger.
            Nothing is written when the ledger rejects the fill.
        """
        with FILL_LOCK:
            current = self._portfolios.get(portfolio.id)
            if current is None:
                raise PortfolioNotFoundError(str(portfolio.id))
            self.mark_to_market(current)
            commission = self._execution.commission(quantity, fill_price)
            trade = self._ledger.apply(
                current, side, symbol, quantity, fill_price, commission, at, order_id
            )
            position = current.positions.get(symbol)
            if position is not None:
                position.current_price = market_price

            self._portfolios.save(current)
            self._trades.save(trade)
            self.snapshot(current, at)
            return trade

    def snapshot(self, portfolio: Portfolio, at: datetime) -> None:
        self._snapshots.save(
            PortfolioSnapshot(
                portfolio_id=portfolio.id,
                taken_at=at,
                total_value=portfolio.total_value,
                cash=portfolio.current_cash,
            )
        )

    def daily_realized_pnl(self, portfolio_id: UUID, at: datetime) -> Decimal:
        """Realized P&L of trades executed on the UTC day of ``at``."""
        start = datetime(at.year, at.month, at.day)
        trades = self._trades.list_between(portfolio_id, start, start + timedelta(days=1))
        return sum(
            (t.realized_pnl for t in trades if t.realized_pnl is not None),
            Decimal("0"),
        )
