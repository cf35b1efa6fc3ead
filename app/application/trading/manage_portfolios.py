"""
Use cases: Portfolio lifecycle.

Input: CreatePortfolioCommand / portfolio ids
Output: Portfolio entities
Side effects: Writes portfolios and an opening snapshot.
Failure cases: InvalidOrderError (non-positive cash), PortfolioNotFoundError.
"""

import logging
from typing import Callable
from uuid import UUID

from app.application.trading.dtos import CreatePortfolioCommand
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import Portfolio, utc_now
from app.domain.trading.errors import InvalidOrderError, PortfolioNotFoundError
from app.domain.trading.ports import PortfolioRepository
from app.domain.trading.strategy_assignment import (
    StrategyAssignmentService,
    StrategyProfile,
)

logger = logging.getLogger(__name__)


def load_portfolio(repo: PortfolioRepository, portfolio_id: UUID) -> Portfolio:
    """Fetch a portfolio or raise PortfolioNotFoundError."""
    portfolio = repo.get(portfolio_id)
    if portfolio is None:
        raise PortfolioNotFoundError(str(portfolio_id))
    return portfolio


class CreatePortfolioUseCase:
    """Opens a new paper portfolio funded with its initial cash."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        executor: TradeExecutor,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._executor = executor
        self._clock = clock

    def execute(self, command: CreatePortfolioCommand) -> Portfolio:
        if command.initial_cash <= 0:
            raise InvalidOrderError("initial cash must be positive")

        now = self._clock()
        portfolio = Portfolio(
            name=command.name,
            initial_cash=command.initial_cash,
            current_cash=command.initial_cash,
            risk_profile=command.risk_profile,
            day_trading_enabled=command.day_trading_enabled,
            created_at=now,
        )
        self._portfolios.save(portfolio)
        self._executor.snapshot(portfolio, now)
        logger.info(
            "Created portfolio %s (%s) with %s", portfolio.id, portfolio.name, portfolio.initial_cash
        )
        return portfolio


class GetPortfolioUseCase:
    """Returns a portfolio marked to the latest quotes."""

    def __init__(self, portfolio_repo: PortfolioRepository, executor: TradeExecutor) -> None:
        self._portfolios = portfolio_repo
        self._executor = executor

    def execute(self, portfolio_id: UUID) -> Portfolio:
        portfolio = load_portfolio(self._portfolios, portfolio_id)
        return self._executor.mark_to_market(portfolio)


class ListPortfoliosUseCase:
    def __init__(self, portfolio_repo: PortfolioRepository, executor: TradeExecutor) -> None:
        self._portfolios = portfolio_repo
        self._executor = executor

    def execute(self) -> list[Portfolio]:
        return [self._executor.mark_to_market(p) for p in self._portfolios.list_all()]


class DeletePortfolioUseCase:
    def __init__(self, portfolio_repo: PortfolioRepository) -> None:
        self._portfolios = portfolio_repo

    def execute(self, portfolio_id: UUID) -> None:
        if not self._portfolios.delete(portfolio_id):
            raise PortfolioNotFoundError(str(portfolio_id))
        logger.info("Deleted portfolio %s", portfolio_id)


class AssignStrategyUseCase:
    """Chooses a predefined strategy from the portfolio's current value."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        executor: TradeExecutor,
        assignment: StrategyAssignmentService,
    ) -> None:
        self._portfolios = portfolio_repo
        self._executor = executor
        self._assignment = assignment

    def execute(self, portfolio_id: UUID) -> tuple[Portfolio, StrategyProfile]:
        portfolio = self._executor.mark_to_market(
            load_portfolio(self._portfolios, portfolio_id)
        )
        profile = self._assignment.select_strategy(portfolio.total_value)
        portfolio.assigned_strategy = profile.id
        self._portfolios.save(portfolio)
        logger.info(
            "Assigned strategy %s to portfolio %s (value %s)",
            profile.id,
            portfolio.id,
            portfolio.total_value,
        )
        return portfolio, profile
