"""
Use cases: Run, fetch and list strategy backtests.

Input: RunBacktestCommand / backtest ids
Output: BacktestRecord
Side effects: RunBacktest stores the report.
Failure cases: InvalidOrderError, NoMarketDataError, BacktestNotFoundError.
"""

import logging
from typing import Any, Callable
from uuid import UUID, uuid4

from app.application.trading.dtos import BacktestRecord, RunBacktestCommand
from app.domain.trading.backtesting import (
    BacktestParams,
    BacktestService,
    BacktestStrategy,
)
from app.domain.trading.entities import SizingMethod, utc_now
from app.domain.trading.errors import BacktestNotFoundError, InvalidOrderError
from app.domain.trading.ports import BacktestRepository, PriceHistoryRepository

logger = logging.getLogger(__name__)


def _record(row: dict[str, Any]) -> BacktestRecord:
    return BacktestRecord(
        id=row["id"],
        strategy_name=row["strategy_name"],
        created_at=row["created_at"],
        report=row["report"],
    )


class RunBacktestUseCase:
    """Replays stored bars through a component strategy and keeps the report."""

    def __init__(
        self,
        history_repo: PriceHistoryRepository,
        backtest_repo: BacktestRepository,
        service: BacktestService,
        clock: Callable = utc_now,
    ) -> None:
        self._history = history_repo
        self._backtests = backtest_repo
        self._service = service
        self._clock = clock

    def execute(self, command: RunBacktestCommand) -> BacktestRecord:
        if not command.symbols:
            raise InvalidOrderError("at least one symbol is required")
        if not command.components:
            raise InvalidOrderError("strategy needs at least one component")
        if command.sizing_method not in (SizingMethod.FIXED, SizingMethod.PERCENTAGE):
            raise InvalidOrderError("backtests support fixed or percentage sizing only")

        symbols = sorted({s.upper() for s in command.symbols})
        logger.info(
            "Running backtest %s on %s from %s to %s",
            command.strategy_name,
            ", ".join(symbols),
            command.start,
            command.end,
        )
        bars = []
        for symbol in symbols:
            bars.extend(self._history.get_history(symbol, start=command.start, end=command.end))

        report = self._service.run(
            BacktestStrategy(
                name=command.strategy_name,
                components=list(command.components),
                sizing_method=command.sizing_method,
                sizing_value=command.sizing_value,
            ),
            BacktestParams(
                start=command.start,
                end=command.end,
                initial_capital=command.initial_capital,
                symbols=symbols,
                commission=command.commission,
                slippage=command.slippage,
            ),
            bars,
        )

        record = BacktestRecord(
            id=uuid4(),
            strategy_name=command.strategy_name,
            created_at=self._clock(),
            report=report.to_dict(),
        )
        self._backtests.save(record.id, record.strategy_name, record.created_at, record.report)
        return record


class GetBacktestUseCase:
    def __init__(self, backtest_repo: BacktestRepository) -> None:
        self._backtests = backtest_repo

    def execute(self, backtest_id: UUID) -> BacktestRecord:
        row = self._backtests.get(backtest_id)
        if row is None:
            raise BacktestNotFoundError(str(backtest_id))
        return _record(row)


class ListBacktestsUseCase:
    def __init__(self, backtest_repo: BacktestRepository) -> None:
        self._backtests = backtest_repo

    def execute(self, limit: int = 50) -> list[BacktestRecord]:
        return [_record(row) for row in self._backtests.list_all(limit=limit)]
