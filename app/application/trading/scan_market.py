"""
Use case: Scan symbols for technical setups.

Input: ScanMarketQuery (criteria, optional symbols)
Output: list[ScanMatch] for symbols matching every criterion
Side effects: None.
Failure cases: InvalidOrderError when no criteria are given.
"""

import logging

from app.application.trading.dtos import ScanMarketQuery, ScanMatch
from app.application.trading.market_data import recent_bars
from app.domain.trading.errors import InvalidOrderError
from app.domain.trading.indicators import TechnicalIndicatorService
from app.domain.trading.ports import PriceHistoryRepository, StockQuoteRepository

logger = logging.getLogger(__name__)


class ScanMarketUseCase:
    def __init__(
        self,
        quote_repo: StockQuoteRepository,
        history_repo: PriceHistoryRepository,
        indicators: TechnicalIndicatorService,
    ) -> None:
        self._quotes = quote_repo
        self._history = history_repo
        self._indicators = indicators

    def execute(self, query: ScanMarketQuery) -> list[ScanMatch]:
        if not query.criteria:
            raise InvalidOrderError("at least one scan criterion is required")

        symbols = [s.upper() for s in query.symbols] if query.symbols else self._quotes.list_symbols()
        quotes = self._quotes.get_many(symbols)
        matches = []
        for symbol in symbols:
            bars = recent_bars(self._history, symbol)
            indicators = self._indicators.calculate(bars)
            if indicators.is_empty:
                continue
            if all(
                self._indicators.evaluate_criterion(indicators, c.field, c.operator, c.value)
                for c in query.criteria
            ):
                quote = quotes.get(symbol)
                matches.append(
                    ScanMatch(
                        symbol=symbol,
                        price=quote.price if quote else bars[-1].close,
                        indicators=indicators,
                    )
                )

        logger.info("Scanned %d symbols, %d matches", len(symbols), len(matches))
        return matches
