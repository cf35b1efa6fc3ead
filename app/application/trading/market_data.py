"""
Use cases: Quotes, price history, indicators and market status.

Input: symbols / ImportPriceHistoryCommand / timestamps
Output: StockQuote, bar counts, IndicatorsResult, MarketStatus
Side effects: ImportPriceHistory writes bars.
Failure cases: SymbolNotFoundError, NoMarketDataError, InvalidOrderError.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from app.application.trading.dtos import ImportPriceHistoryCommand, IndicatorsResult
from app.domain.trading.entities import PriceBar, StockQuote, utc_now
from app.domain.trading.errors import (
    InvalidOrderError,
    NoMarketDataError,
    SymbolNotFoundError,
)
from app.domain.trading.indicators import TechnicalIndicatorService
from app.domain.trading.market_hours import MarketHoursService, MarketStatus
from app.domain.trading.ports import PriceHistoryRepository, StockQuoteRepository

logger = logging.getLogger(__name__)

INDICATOR_LOOKBACK_BARS = 250


def recent_bars(history: PriceHistoryRepository, symbol: str) -> list[PriceBar]:
    """Return the most recent bars needed for a full indicator set."""
    return history.get_history(symbol)[-INDICATOR_LOOKBACK_BARS:]


class GetQuoteUseCase:
    def __init__(self, quote_repo: StockQuoteRepository) -> None:
        self._quotes = quote_repo

    def execute(self, symbol: str) -> StockQuote:
        quote = self._quotes.get(symbol.upper())
        if quote is None:
            raise SymbolNotFoundError(symbol)
        return quote


class ImportPriceHistoryUseCase:
    """Stores daily bars, replacing bars already stored for the same day."""

    def __init__(self, history_repo: PriceHistoryRepository) -> None:
        self._history = history_repo

    def execute(self, command: ImportPriceHistoryCommand) -> int:
        for bar in command.bars:
            if min(bar.open, bar.high, bar.low, bar.close) <= 0:
                raise InvalidOrderError(f"bar prices must be positive ({bar.symbol} {bar.date})")
            if bar.high < bar.low:
                raise InvalidOrderError(f"bar high below low ({bar.symbol} {bar.date})")
            if bar.volume < 0:
                raise InvalidOrderError(f"bar volume cannot be negative ({bar.symbol} {bar.date})")

        written = self._history.save_bars(command.bars)
        symbols = sorted({b.symbol for b in command.bars})
        logger.info("Imported %d bars for %s", written, ", ".join(symbols) or "no symbols")
        return written


class GetIndicatorsUseCase:
    """Computes technical indicators over a symbol's stored history."""

    def __init__(
        self,
        history_repo: PriceHistoryRepository,
        indicators: TechnicalIndicatorService,
    ) -> None:
        self._history = history_repo
        self._indicators = indicators

    def execute(self, symbol: str) -> IndicatorsResult:
        symbol = symbol.upper()
        bars = recent_bars(self._history, symbol)
        if not bars:
            raise NoMarketDataError(f"no price history for {symbol}")

        closes = [float(b.close) for b in bars]
        return IndicatorsResult(
            symbol=symbol,
            bar_count=len(bars),
            as_of=bars[-1].date,
            volatility=self._indicators.historical_volatility(closes),
            indicators=self._indicators.calculate(bars),
        )


class GetMarketStatusUseCase:
    def __init__(self, market_hours: MarketHoursService, clock: Callable = utc_now) -> None:
        self._market_hours = market_hours
        self._clock = clock

    def execute(self, at: Optional[datetime] = None) -> MarketStatus:
        return self._market_hours.get_market_status(at or self._clock())
