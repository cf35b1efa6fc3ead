"""
Domain service: portfolio ledger.

Applies executed fills to a portfolio: cash, positions, average cost,
realized P&L and the pattern-day-trader rule.
"""

import logging
from datetime import datetime
from decimal import Decimal

import numpy as np

from app.domain.trading.entities import (
    CENT,
    OrderSide,
    Portfolio,
    Position,
    Trade,
)
from app.domain.trading.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    PatternDayTradeError,
)

logger = logging.getLogger(__name__)

DAY_TRADE_WINDOW_BUSINESS_DAYS = 5
PRICE_QUANTUM = Decimal("0.0001")


class PortfolioLedger:
    """Mutates a Portfolio in response to fills and returns the Trade record."""

    def __init__(
        self,
        pdt_minimum_equity: Decimal = Decimal("25000"),
        max_day_trades: int = 3,
    ) -> None:
        self._pdt_minimum_equity = pdt_minimum_equity
        self._max_day_trades = max_day_trades

    def apply_buy(
        self,
        portfolio: Portfolio,
        symbol: str,
        quantity: int,
        price: Decimal,
        commission: Decimal,
        at: datetime,
        order_id=None,
    ) -> Trade:
        """Debit cash and add to (or open) a position.

        Raises:
            InvalidOrderError: If quantity or price is not positive.
            InsufficientFundsError: If cost plus commission exceeds cash.
        """
        self._check_inputs(quantity, price)
        cost = price * quantity + commission
        if cost > portfolio.current_cash:
            raise InsufficientFundsError(
                required=str(cost.quantize(CENT)),
                available=str(portfolio.current_cash.quantize(CENT)),
            )

        portfolio.current_cash -= cost
        position = portfolio.positions.get(symbol)
        if position is None:
            portfolio.positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                average_price=price.quantize(PRICE_QUANTUM),
                current_price=price,
                opened_at=at,
            )
        else:
            total_qty = position.quantity + quantity
            position.average_price = (
                (position.average_price * position.quantity + price * quantity)
                / total_qty
            ).quantize(PRICE_QUANTUM)
            position.quantity = total_qty
            position.current_price = price

        logger.info(
            "Bought %d %s @ %s for portfolio %s (commission %s)",
            quantity,
            symbol,
            price,
            portfolio.id,
            commission,
        )
        return Trade(
            portfolio_id=portfolio.id,
            symbol=symbol,
            side=OrderSide.BUY,
            quantity=quantity,
            price=price,
            commission=commission,
            executed_at=at,
            order_id=order_id,
        )

    def apply_sell(
        self,
        portfolio: Portfolio,
        symbol: str,
        quantity: int,
        price: Decimal,
        commission: Decimal,
        at: datetime,
        order_id=None,
    ) -> Trade:
        """Credit cash, reduce a position and realize P&L.

        Raises:
            InvalidOrderError: If quantity or price is not positive.
            InsufficientPositionError: If selling more than is held.
            PatternDayTradeError: If the sale is a day trade over the limit.
        """
        self._check_inputs(quantity, price)
        position = portfolio.positions.get(symbol)
        held = position.quantity if position else 0
        if position is None or quantity > held:
            raise InsufficientPositionError(symbol, quantity, held)

        if position.opened_at.date() == at.date():
            self._register_day_trade(portfolio, at)

        realized = (price - position.average_price) * quantity - commission
        portfolio.current_cash += price * quantity - commission
        portfolio.realized_pnl += realized
        position.quantity -= quantity
        position.current_price = price
        if position.quantity == 0:
            del portfolio.positions[symbol]

        logger.info(
            "Sold %d %s @ %s for portfolio %s (realized %s)",
            quantity,
            symbol,
            price,
            portfolio.id,
            realized.quantize(CENT),
        )
        return Trade(
            portfolio_id=portfolio.id,
            symbol=symbol,
            side=OrderSide.SELL,
            quantity=quantity,
            price=price,
            commission=commission,
            realized_pnl=realized.quantize(CENT),
            executed_at=at,
            order_id=order_id,
        )

    def apply(
        self,
        portfolio: Portfolio,
        side: OrderSide,
        symbol: str,
        quantity: int,
        price: Decimal,
        commission: Decimal,
        at: datetime,
        order_id=None,
    ) -> Trade:
        if side == OrderSide.BUY:
            return self.apply_buy(
                portfolio, symbol, quantity, price, commission, at, order_id
            )
        return self.apply_sell(
            portfolio, symbol, quantity, price, commission, at, order_id
        )

    def is_pdt_restricted(self, portfolio: Portfolio) -> bool:
        """Accounts under the equity minimum without day trading enabled."""
        return (
            not portfolio.day_trading_enabled
            and portfolio.total_value < self._pdt_minimum_equity
        )

    def _register_day_trade(self, portfolio: Portfolio, at: datetime) -> None:
        today = at.date()
        start = portfolio.day_trade_window_start
        if (
            start is None
            or np.busday_count(start, today) >= DAY_TRADE_WINDOW_BUSINESS_DAYS
        ):
            portfolio.day_trade_window_start = today
            portfolio.day_trade_count = 0

        if (
            self.is_pdt_restricted(portfolio)
            and portfolio.day_trade_count >= self._max_day_trades
        ):
            logger.warning(
                "Pattern day trader limit hit for portfolio %s", portfolio.id
            )
            raise PatternDayTradeError(
                str(portfolio.id), portfolio.day_trade_count
            )

        portfolio.day_trade_count += 1

    @staticmethod
    def _check_inputs(quantity: int, price: Decimal) -> None:
        if quantity <= 0:
            raise InvalidOrderError("quantity must be positive")
        if price <= 0:
            raise InvalidOrderError("price must be positive")
