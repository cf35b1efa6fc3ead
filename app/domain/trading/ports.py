"""
Port interfaces (ABCs) for the trading bounded context.

Ports define the contracts that the domain requires from the outside world.
Infrastructure adapters implement these interfaces.
The domain layer never depends on concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from app.domain.trading.entities import (
    Order,
    OrderStatus,
    Portfolio,
    PortfolioSnapshot,
    PriceBar,
    StockQuote,
    Trade,
    TradingRule,
)


class StockQuoteRepository(ABC):
    """Port for the latest known quote per symbol."""

    @abstractmethod
    def get(self, symbol: str) -> Optional[StockQuote]:
        """Return the latest quote for a symbol, or None."""
        raise NotImplementedError

    @abstractmethod
    def get_many(self, symbols: list[str]) -> dict[str, StockQuote]:
        """Return quotes keyed by symbol. Unknown symbols are omitted."""
        raise NotImplementedError

    @abstractmethod
    def list_symbols(self) -> list[str]:
        """Return every symbol with a stored quote, sorted."""
        raise NotImplementedError

    @abstractmethod
    def upsert(self, quote: StockQuote) -> None:
        """Insert or replace the quote for its symbol."""
        raise NotImplementedError


class PriceHistoryRepository(ABC):
    """Port for daily OHLCV history."""

    @abstractmethod
    def get_history(
        self,
        symbol: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[PriceBar]:
        """Return bars for a symbol ordered by date ascending.

        Args:
            symbol: Stock ticker.
            start: Inclusive lower bound, or None for no bound.
            end: Inclusive upper bound, or None for no bound.
        """
        raise NotImplementedError

    @abstractmethod
    def save_bars(self, bars: list[PriceBar]) -> int:
        """Persist bars, replacing any existing bar for the same symbol and date.

        Returns:
            Number of bars written.
        """
        raise NotImplementedError


class PortfolioRepository(ABC):
    """Port for portfolio persistence, positions included."""

    @abstractmethod
    def get(self, portfolio_id: UUID) -> Optional[Portfolio]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self, active_only: bool = False) -> list[Portfolio]:
        raise NotImplementedError

    @abstractmethod
    def list_holding(self, symbol: str) -> list[Portfolio]:
        """Return portfolios that currently hold the symbol."""
        raise NotImplementedError

    @abstractmethod
    def save(self, portfolio: Portfolio) -> None:
        """Insert or update the portfolio and replace its positions."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, portfolio_id: UUID) -> bool:
        """Delete the portfolio and everything it owns. Returns False if absent."""
        raise NotImplementedError


class TradeRepository(ABC):
    """Port for executed trades."""

    @abstractmethod
    def save(self, trade: Trade) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_for_portfolio(
        self, portfolio_id: UUID, limit: int = 100
    ) -> list[Trade]:
        """Return trades newest first."""
        raise NotImplementedError

    @abstractmethod
    def list_between(
        self, portfolio_id: UUID, start: datetime, end: datetime
    ) -> list[Trade]:
        """Return trades executed in [start, end), oldest first."""
        raise NotImplementedError


class OrderRepository(ABC):
    """Port for orders."""

    @abstractmethod
    def get(self, order_id: UUID) -> Optional[Order]:
        raise NotImplementedError

    @abstractmethod
    def save(self, order: Order) -> None:
        """Insert or update an order."""
        raise NotImplementedError

    @abstractmethod
    def list_orders(
        self,
        portfolio_id: Optional[UUID] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        """Return orders newest first, optionally filtered."""
        raise NotImplementedError

    @abstractmethod
    def list_open(self, symbol: Optional[str] = None) -> list[Order]:
        """Return open orders oldest first, optionally for one symbol."""
        raise NotImplementedError

    @abstractmethod
    def list_children(self, parent_order_id: UUID) -> list[Order]:
        raise NotImplementedError

    @abstractmethod
    def list_oco_group(self, oco_group_id: str) -> list[Order]:
        raise NotImplementedError


class TradingRuleRepository(ABC):
    """Port for automation rules."""

    @abstractmethod
    def get(self, rule_id: UUID) -> Optional[TradingRule]:
        raise NotImplementedError

    @abstractmethod
    def save(self, rule: TradingRule) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_rules(
        self, portfolio_id: Optional[UUID] = None, active_only: bool = False
    ) -> list[TradingRule]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, rule_id: UUID) -> bool:
        raise NotImplementedError


class SnapshotRepository(ABC):
    """Port for portfolio valuation history."""

    @abstractmethod
    def save(self, snapshot: PortfolioSnapshot) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_for_portfolio(self, portfolio_id: UUID) -> list[PortfolioSnapshot]:
        """Return snapshots oldest first."""
        raise NotImplementedError


class BacktestRepository(ABC):
    """Port for stored backtest results.

    Reports are stored as JSON-compatible dictionaries.
    """

    @abstractmethod
    def save(
        self,
        backtest_id: UUID,
        strategy_name: str,
        created_at: datetime,
        report: dict[str, Any],
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, backtest_id: UUID) -> Optional[dict[str, Any]]:
        """Return the stored record (id, strategy_name, created_at, report)."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self, limit: int = 50) -> list[dict[str, Any]]:
        """Return stored records newest first."""
        raise NotImplementedError
