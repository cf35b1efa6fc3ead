"""
Tests for the background scheduler.

Covers:
- run_now execution, skipping and failure recording
- Task history bounds
- build_scheduler wiring against a real database
"""

from decimal import Decimal
from unittest.mock import MagicMock

from app.application.trading.dtos import (
    CreatePortfolioCommand,
    CreateTradingRuleCommand,
    MarketTickCommand,
    PlaceOrderCommand,
)
from app.application.trading.run_auto_trading import RunAutoTradingUseCase
from app.domain.trading.entities import (
    ConditionOperator,
    OrderSide,
    OrderStatus,
    OrderType,
    RuleAction,
    RuleCondition,
    RuleType,
    SizingMethod,
    StockQuote,
)
from app.domain.trading.errors import PortfolioNotFoundError
from app.infrastructure.scheduling.auto_trading_scheduler import (
    AutoTradingScheduler,
    TaskResult,
    TaskStatus,
)
from app.infrastructure.trading.order_repository import OrderRepositoryAdapter
from app.infrastructure.trading.stock_quote_repository import StockQuoteRepositoryAdapter
from app.interfaces.trading.dependencies import (
    build_scheduler,
    get_create_portfolio_use_case,
    get_create_rule_use_case,
    get_place_order_use_case,
    get_process_market_tick_use_case,
)


def _scheduler(market_open: bool = True, **overrides) -> AutoTradingScheduler:
    tasks = {
        "poll_orders": MagicMock(return_value={"fills": 0}),
        "run_auto_trading": MagicMock(return_value={"executed": 2}),
        "expire_orders": MagicMock(return_value={"expired": 1}),
    }
    tasks.update(overrides)
    return AutoTradingScheduler(
        is_market_open=MagicMock(return_value=market_open),
        max_history=3,
        **tasks,
    )


# =====================================================================
# AutoTradingScheduler
# =====================================================================


class TestAutoTradingScheduler:
    def test_initial_state(self):
        scheduler = _scheduler()
        assert scheduler.is_running is False
        assert scheduler.task_history == []

    def test_run_now_completes(self):
        scheduler = _scheduler()
        result = scheduler.run_now("expire_orders")
        assert isinstance(result, TaskResult)
        assert result.status == TaskStatus.COMPLETED
        assert result.details == {"expired": 1}
        assert result.finished_at is not None
        assert scheduler.task_history == [result]

    def test_auto_trading_skipped_when_market_closed(self):
        run = MagicMock()
        scheduler = _scheduler(market_open=False, run_auto_trading=run)
        result = scheduler.run_now("auto_trading")
        assert result.status == TaskStatus.SKIPPED
        assert result.details == {"reason": "market closed"}
        run.assert_not_called()

    def test_other_tasks_run_when_market_closed(self):
        scheduler = _scheduler(market_open=False)
        assert scheduler.run_now("poll_orders").status == TaskStatus.COMPLETED

    def test_unknown_task(self):
        scheduler = _scheduler()
        result = scheduler.run_now("nonexistent")
        assert result.status == TaskStatus.FAILED
        assert "Unknown task" in result.error
        assert scheduler.task_history == []

    def test_failure_is_recorded(self):
        scheduler = _scheduler(poll_orders=MagicMock(side_effect=RuntimeError("db down")))
        result = scheduler.run_now("poll_orders")
        assert result.status == TaskStatus.FAILED
        assert result.error == "db down"
        assert scheduler.task_history[-1] is result

    def test_history_is_bounded(self):
        scheduler = _scheduler()
        for _ in range(5):
            scheduler.run_now("poll_orders")
        assert len(scheduler.task_history) == 3

    def test_start_and_stop(self):
        scheduler = _scheduler()
        scheduler.start()
        try:
            assert scheduler.is_running is True
        finally:
            scheduler.stop()
        assert scheduler.is_running is False


class TestTaskStatus:
    def test_values(self):
        assert TaskStatus.COMPLETED.value == "completed"
        assert TaskStatus.SKIPPED.value == "skipped"
        assert TaskStatus.FAILED.value == "failed"


# =====================================================================
# build_scheduler
# =====================================================================


class TestBuildScheduler:
    def test_poll_orders_fills_against_stored_quotes(self, engine, clock):
        portfolio = get_create_portfolio_use_case(engine, clock).execute(
            CreatePortfolioCommand(name="Sched", initial_cash=Decimal("100000"))
        )
        get_process_market_tick_use_case(engine, clock).execute(
            MarketTickCommand(symbol="AAPL", price=Decimal("100"))
        )
        order = get_place_order_use_case(engine, clock).execute(
            PlaceOrderCommand(
                portfolio_id=portfolio.id,
                symbol="AAPL",
                side=OrderSide.BUY,
                order_type=OrderType.LIMIT,
                quantity=5,
                limit_price=Decimal("95"),
            )
        )
        StockQuoteRepositoryAdapter(engine).upsert(
            StockQuote(symbol="AAPL", price=Decimal("94"), updated_at=clock.now)
        )

        result = build_scheduler(engine).run_now("poll_orders")

        assert result.status == TaskStatus.COMPLETED
        assert result.details == {"fills": 1}
        assert OrderRepositoryAdapter(engine).get(order.id).status == OrderStatus.EXECUTED

    def test_auto_trading_without_rules(self, engine):
        scheduler = build_scheduler(engine)
        scheduler._is_market_open = lambda: True
        result = scheduler.run_now("auto_trading")
        assert result.status == TaskStatus.COMPLETED
        assert result.details == {"portfolios": 0, "executed": 0, "failed": 0}

    def test_auto_trading_continues_after_portfolio_failure(self, engine, clock, monkeypatch):
        portfolios = [
            get_create_portfolio_use_case(engine, clock).execute(
                CreatePortfolioCommand(name=name, initial_cash=Decimal("100000"))
            )
            for name in ("First", "Second")
        ]
        get_process_market_tick_use_case(engine, clock).execute(
            MarketTickCommand(symbol="AAPL", price=Decimal("100"))
        )
        for portfolio in portfolios:
            get_create_rule_use_case(engine, clock).execute(
                CreateTradingRuleCommand(
                    portfolio_id=portfolio.id,
                    name="buy-below-150",
                    rule_type=RuleType.ENTRY,
                    conditions=[
                        RuleCondition("current_price", ConditionOperator.LESS_THAN, 150)
                    ],
                    actions=[
                        RuleAction(
                            side=OrderSide.BUY,
                            sizing_method=SizingMethod.FIXED,
                            size_value=10.0,
                        )
                    ],
                )
            )

        broken = portfolios[0].id
        original = RunAutoTradingUseCase.execute

        def execute(self, command):
            if command.portfolio_id == broken:
                raise PortfolioNotFoundError(str(broken))
            return original(self, command)

        monkeypatch.setattr(RunAutoTradingUseCase, "execute", execute)
        scheduler = build_scheduler(engine)
        scheduler._is_market_open = lambda: True

        result = scheduler.run_now("auto_trading")

        assert result.status == TaskStatus.COMPLETED
        assert result.details == {"portfolios": 2, "executed": 1, "failed": 1}
