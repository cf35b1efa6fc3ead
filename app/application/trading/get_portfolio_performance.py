"""
Use case: Portfolio performance report.

Input: portfolio id
Output: PortfolioPerformanceResult
Side effects: None.
Failure cases: PortfolioNotFoundError.
"""

import logging
from decimal import Decimal
from uuid import UUID

from app.application.trading.dtos import PortfolioPerformanceResult
from app.application.trading.manage_portfolios import load_portfolio
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.performance import PerformanceCalculator
from app.domain.trading.ports import (
    PortfolioRepository,
    SnapshotRepository,
    TradeRepository,
)

logger = logging.getLogger(__name__)

MAX_TRADES = 10_000


class GetPortfolioPerformanceUseCase:
    """Computes return, risk and trade statistics from stored history.

    Return metrics are taken over the snapshot series extended with the
    current marked value; trade statistics over realized sell P&Ls.
    """

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        snapshot_repo: SnapshotRepository,
        trade_repo: TradeRepository,
        executor: TradeExecutor,
        calculator: PerformanceCalculator,
    ) -> None:
        self._portfolios = portfolio_repo
        self._snapshots = snapshot_repo
        self._trades = trade_repo
        self._executor = executor
        self._calculator = calculator

    def execute(self, portfolio_id: UUID) -> PortfolioPerformanceResult:
        portfolio = self._executor.mark_to_market(
            load_portfolio(self._portfolios, portfolio_id)
        )
        snapshots = self._snapshots.list_for_portfolio(portfolio_id)
        values = [float(s.total_value) for s in snapshots]
        values.append(float(portfolio.total_value))

        trades = self._trades.list_for_portfolio(portfolio_id, limit=MAX_TRADES)
        pnls = [
            float(t.realized_pnl)
            for t in reversed(trades)
            if t.realized_pnl is not None
        ]
        logger.info(
            "Performance for portfolio %s: %d snapshots, %d closed trades",
            portfolio_id,
            len(snapshots),
            len(pnls),
        )

        unrealized = sum(
            (p.unrealized_pnl for p in portfolio.positions.values()),
            Decimal("0"),
        )
        return PortfolioPerformanceResult(
            portfolio_id=portfolio.id,
            total_value=portfolio.total_value,
            total_pnl=portfolio.total_pnl,
            total_return_pct=portfolio.total_return_pct,
            realized_pnl=portfolio.realized_pnl,
            unrealized_pnl=unrealized,
            snapshot_count=len(snapshots),
            metrics=self._calculator.return_metrics(values),
            statistics=self._calculator.trade_statistics(pnls),
        )
