"""
Use case: Process a new market price for a symbol.

Input: MarketTickCommand (symbol, price, volume, previous_close)
Output: MarketTickResult
Side effects: Upserts the quote, snapshots holders, fills and updates orders.
Failure cases: InvalidOrderError (non-positive price or negative volume).
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from app.application.trading.dtos import MarketTickCommand, MarketTickResult
from app.application.trading.order_processor import OrderProcessor
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import StockQuote, Trade, utc_now
from app.domain.trading.errors import InvalidOrderError
from app.domain.trading.ports import (
    OrderRepository,
    PortfolioRepository,
    StockQuoteRepository,
)

logger = logging.getLogger(__name__)


class ProcessMarketTickUseCase:
    """Applies a price update to quotes, portfolios and working orders."""

    def __init__(
        self,
        quote_repo: StockQuoteRepository,
        portfolio_repo: PortfolioRepository,
        order_repo: OrderRepository,
        executor: TradeExecutor,
        processor: OrderProcessor,
        clock: Callable = utc_now,
    ) -> None:
        self._quotes = quote_repo
        self._portfolios = portfolio_repo
        self._orders = order_repo
        self._executor = executor
        self._processor = processor
        self._clock = clock

    def execute(self, command: MarketTickCommand) -> MarketTickResult:
        if command.price <= 0:
            raise InvalidOrderError("price must be positive")
        if command.volume < 0:
            raise InvalidOrderError("volume cannot be negative")

        now = self._clock()
        symbol = command.symbol.upper()
        previous = self._quotes.get(symbol)
        previous_close = command.previous_close
        if previous_close is None:
            previous_close = previous.price if previous else Decimal("0")

        quote = StockQuote(
            symbol=symbol,
            price=command.price,
            previous_close=previous_close,
            volume=command.volume,
            updated_at=now,
        )
        self._quotes.upsert(quote)

        holders = self._portfolios.list_holding(symbol)
        for portfolio in holders:
            self._executor.mark_to_market(portfolio)
            self._executor.snapshot(portfolio, now)

        open_orders = self._orders.list_open(symbol)
        trades = self._process_orders(open_orders, quote, now)
        logger.info(
            "Tick %s @ %s: %d portfolios marked, %d orders evaluated, %d fills",
            symbol,
            command.price,
            len(holders),
            len(open_orders),
            len(trades),
        )
        return MarketTickResult(
            symbol=symbol,
            price=command.price,
            portfolios_marked=len(holders),
            orders_evaluated=len(open_orders),
            trades=trades,
        )

    def reprocess_open_orders(self, now: Optional[datetime] = None) -> list[Trade]:
        """Re-evaluate every open order against the latest stored quote."""
        now = now or self._clock()
        orders = self._orders.list_open()
        quotes = self._quotes.get_many(sorted({o.symbol for o in orders}))
        trades = []
        for order in orders:
            quote = quotes.get(order.symbol)
            if quote is None:
                continue
            trades.extend(self._process_orders([order], quote, now))
        return trades

    def _process_orders(self, orders, quote: StockQuote, now: datetime) -> list[Trade]:
        trades = []
        for order in orders:
            # reload so OCO cancellations earlier in the pass are seen
            current = self._orders.get(order.id)
            if current is None or not current.is_open:
                continue
            trade = self._processor.process(current, quote, now)
            if trade is not None:
                trades.append(trade)
        return trades
