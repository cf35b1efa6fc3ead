"""
Use cases: Pre-trade risk validation and position sizing.

Input: ValidateTradeRiskCommand / CalculatePositionSizeCommand
Output: RiskCheckResult / PositionSizeResult
Side effects: None.
Failure cases: PortfolioNotFoundError, SymbolNotFoundError,
    InvalidOrderError, InvalidPositionSizeError.
"""

import logging
from decimal import Decimal
from typing import Callable, Optional

from app.application.trading.dtos import (
    CalculatePositionSizeCommand,
    ValidateTradeRiskCommand,
)
from app.application.trading.manage_portfolios import load_portfolio
from app.application.trading.market_data import recent_bars
from app.application.trading.risk_policy import RiskPolicy
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import utc_now
from app.domain.trading.errors import (
    InvalidOrderError,
    InvalidPositionSizeError,
    SymbolNotFoundError,
)
from app.domain.trading.indicators import TechnicalIndicatorService
from app.domain.trading.ports import (
    PortfolioRepository,
    PriceHistoryRepository,
    StockQuoteRepository,
)
from app.domain.trading.position_sizing import (
    PositionSizeRequest,
    PositionSizeResult,
    PositionSizingService,
)
from app.domain.trading.risk import RiskCheckResult

logger = logging.getLogger(__name__)


def _volatility(
    history: PriceHistoryRepository,
    indicators: TechnicalIndicatorService,
    symbol: str,
) -> Optional[float]:
    closes = [float(b.close) for b in recent_bars(history, symbol)]
    return indicators.historical_volatility(closes)


def _price(quotes: StockQuoteRepository, symbol: str, given: Optional[Decimal]) -> Decimal:
    if given is not None:
        return given
    quote = quotes.get(symbol)
    if quote is None:
        raise SymbolNotFoundError(symbol)
    return quote.price


class ValidateTradeRiskUseCase:
    """Runs the portfolio's risk limits against a hypothetical trade."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        quote_repo: StockQuoteRepository,
        history_repo: PriceHistoryRepository,
        executor: TradeExecutor,
        risk_policy: RiskPolicy,
        indicators: TechnicalIndicatorService,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._quotes = quote_repo
        self._history = history_repo
        self._executor = executor
        self._risk_policy = risk_policy
        self._indicators = indicators
        self._clock = clock

    def execute(self, command: ValidateTradeRiskCommand) -> RiskCheckResult:
        if command.quantity <= 0:
            raise InvalidOrderError("quantity must be positive")

        symbol = command.symbol.upper()
        portfolio = self._executor.mark_to_market(
            load_portfolio(self._portfolios, command.portfolio_id)
        )
        price = _price(self._quotes, symbol, command.price)
        result = self._risk_policy.for_portfolio(portfolio).validate_trade(
            portfolio,
            command.side,
            symbol,
            command.quantity,
            price,
            daily_realized_pnl=self._executor.daily_realized_pnl(portfolio.id, self._clock()),
            volatility=_volatility(self._history, self._indicators, symbol),
        )
        logger.info(
            "Risk check %s %d %s for portfolio %s: %s",
            command.side.value,
            command.quantity,
            symbol,
            portfolio.id,
            "allowed" if result.allowed else result.reason,
        )
        return result


class CalculatePositionSizeUseCase:
    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        quote_repo: StockQuoteRepository,
        history_repo: PriceHistoryRepository,
        executor: TradeExecutor,
        sizing: PositionSizingService,
        indicators: TechnicalIndicatorService,
    ) -> None:
        self._portfolios = portfolio_repo
        self._quotes = quote_repo
        self._history = history_repo
        self._executor = executor
        self._sizing = sizing
        self._indicators = indicators

    def execute(self, command: CalculatePositionSizeCommand) -> PositionSizeResult:
        symbol = command.symbol.upper()
        held = 0
        if command.portfolio_id is not None:
            portfolio = self._executor.mark_to_market(
                load_portfolio(self._portfolios, command.portfolio_id)
            )
            value = portfolio.total_value
            position = portfolio.positions.get(symbol)
            held = position.quantity if position else 0
        elif command.portfolio_value is not None:
            value = command.portfolio_value
        else:
            raise InvalidPositionSizeError("portfolio_id or portfolio_value is required")

        volatility = command.volatility
        if volatility is None:
            volatility = _volatility(self._history, self._indicators, symbol)

        request = PositionSizeRequest(
            symbol=symbol,
            portfolio_value=value,
            current_price=_price(self._quotes, symbol, command.price),
            volatility=volatility,
            win_rate=command.win_rate,
            avg_win=command.avg_win,
            avg_loss=command.avg_loss,
            max_risk_pct=command.max_risk_pct,
            held_quantity=held,
        )
        return self._sizing.calculate(command.method, request, command.params)
