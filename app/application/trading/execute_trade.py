"""
Use case: Execute an immediate market trade for a portfolio.

Input: ExecuteTradeCommand (portfolio_id, symbol, side, quantity)
Output: Trade
Side effects: Updates the portfolio, writes the trade and a snapshot.
Failure cases: PortfolioNotFoundError, SymbolNotFoundError, MarketClosedError,
    RiskLimitExceededError, InsufficientFundsError, InsufficientPositionError,
    PatternDayTradeError, InvalidOrderError.
"""

import logging
from typing import Callable
from uuid import UUID

from app.application.trading.dtos import ExecuteTradeCommand
from app.application.trading.manage_portfolios import load_portfolio
from app.application.trading.risk_policy import RiskPolicy
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import OrderSide, Trade, utc_now
from app.domain.trading.errors import (
    InvalidOrderError,
    PortfolioNotFoundError,
    RiskLimitExceededError,
    SymbolNotFoundError,
)
from app.domain.trading.execution import OrderExecutionService
from app.domain.trading.market_hours import MarketHoursService
from app.domain.trading.ports import (
    PortfolioRepository,
    StockQuoteRepository,
    TradeRepository,
)

logger = logging.getLogger(__name__)


class ExecuteTradeUseCase:
    """Fills a market trade at the latest quote with slippage and commission."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        quote_repo: StockQuoteRepository,
        executor: TradeExecutor,
        execution: OrderExecutionService,
        risk_policy: RiskPolicy,
        market_hours: MarketHoursService,
        enforce_market_hours: bool = False,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._quotes = quote_repo
        self._executor = executor
        self._execution = execution
        self._risk_policy = risk_policy
        self._market_hours = market_hours
        self._enforce_market_hours = enforce_market_hours
        self._clock = clock

    def execute(self, command: ExecuteTradeCommand) -> Trade:
        logger.info(
            "Executing %s %d %s for portfolio %s",
            command.side.value,
            command.quantity,
            command.symbol,
            command.portfolio_id,
        )
        if command.quantity <= 0:
            raise InvalidOrderError("quantity must be positive")

        now = self._clock()
        if self._enforce_market_hours:
            self._market_hours.ensure_market_open(now)

        portfolio = self._executor.mark_to_market(
            load_portfolio(self._portfolios, command.portfolio_id)
        )
        quote = self._quotes.get(command.symbol)
        if quote is None:
            raise SymbolNotFoundError(command.symbol)

        if command.side == OrderSide.BUY:
            risk = self._risk_policy.for_portfolio(portfolio)
            check = risk.validate_trade(
                portfolio,
                command.side,
                command.symbol,
                command.quantity,
                quote.price,
                daily_realized_pnl=self._executor.daily_realized_pnl(portfolio.id, now),
            )
            if not check.allowed:
                raise RiskLimitExceededError(check.reason, check.adjusted_quantity)
            for warning in check.warnings:
                logger.warning("Risk warning for portfolio %s: %s", portfolio.id, warning)

        fill_price = self._execution.apply_slippage(quote.price, command.side)
        return self._executor.fill(
            portfolio,
            command.side,
            command.symbol,
            command.quantity,
            fill_price,
            quote.price,
            now,
        )


class ListTradesUseCase:
    def __init__(self, portfolio_repo: PortfolioRepository, trade_repo: TradeRepository) -> None:
        self._portfolios = portfolio_repo
        self._trades = trade_repo

    def execute(self, portfolio_id: UUID, limit: int = 100) -> list[Trade]:
        if self._portfolios.get(portfolio_id) is None:
            raise PortfolioNotFoundError(str(portfolio_id))
        return self._trades.list_for_portfolio(portfolio_id, limit=limit)
