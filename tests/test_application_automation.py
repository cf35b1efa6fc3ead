"""
Tests for market data, risk, rule and automation use cases.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from app.application.trading.dtos import (
    CalculatePositionSizeCommand,
    CreatePortfolioCommand,
    CreateTradingRuleCommand,
    ImportPriceHistoryCommand,
    MarketTickCommand,
    RunAutoTradingCommand,
    RunBacktestCommand,
    ScanCriterion,
    ScanMarketQuery,
    ValidateTradeRiskCommand,
)
from app.domain.trading.backtesting import StrategyComponent
from app.domain.trading.entities import (
    ConditionOperator,
    OrderSide,
    PortfolioSnapshot,
    PriceBar,
    RuleAction,
    RuleCondition,
    RuleType,
    SizingMethod,
)
from app.domain.trading.errors import (
    BacktestNotFoundError,
    InvalidOrderError,
    InvalidPositionSizeError,
    InvalidRuleError,
    NoMarketDataError,
    PortfolioNotFoundError,
    RuleNotFoundError,
    SymbolNotFoundError,
)
from app.domain.trading.market_hours import MarketSession
from app.infrastructure.trading.snapshot_repository import SnapshotRepositoryAdapter
from app.interfaces.trading.dependencies import (
    get_assign_strategy_use_case,
    get_backtest_use_case,
    get_create_portfolio_use_case,
    get_create_rule_use_case,
    get_delete_rule_use_case,
    get_get_portfolio_use_case,
    get_import_price_history_use_case,
    get_indicators_use_case,
    get_list_backtests_use_case,
    get_list_rules_use_case,
    get_market_status_use_case,
    get_position_size_use_case,
    get_process_market_tick_use_case,
    get_quote_use_case,
    get_run_auto_trading_use_case,
    get_run_backtest_use_case,
    get_scan_market_use_case,
    get_validate_rule_use_case,
    get_validate_trade_risk_use_case,
)


def _portfolio(engine, clock, cash: str = "100000"):
    return get_create_portfolio_use_case(engine, clock).execute(
        CreatePortfolioCommand(name="Auto", initial_cash=Decimal(cash))
    )


def _tick(engine, clock, price: str, symbol: str = "AAPL") -> None:
    get_process_market_tick_use_case(engine, clock).execute(
        MarketTickCommand(symbol=symbol, price=Decimal(price))
    )


def _import(engine, bars) -> int:
    return get_import_price_history_use_case(engine).execute(ImportPriceHistoryCommand(bars=bars))


def _rule_command(portfolio, side=OrderSide.BUY, size=10.0, **kwargs):
    values = dict(
        portfolio_id=portfolio.id,
        name="buy-below-150",
        rule_type=RuleType.ENTRY,
        conditions=[RuleCondition("current_price", ConditionOperator.LESS_THAN, 150)],
        actions=[RuleAction(side=side, sizing_method=SizingMethod.FIXED, size_value=size)],
        priority=5,
    )
    values.update(kwargs)
    return CreateTradingRuleCommand(**values)


def _create_rule(engine, clock, portfolio, **kwargs):
    return get_create_rule_use_case(engine, clock).execute(_rule_command(portfolio, **kwargs))


# =====================================================================
# Market data
# =====================================================================


class TestMarketData:
    def test_import_and_indicators(self, engine, make_bars) -> None:
        bars = make_bars("AAPL", [100 + i for i in range(60)])
        assert _import(engine, bars) == 60

        result = get_indicators_use_case(engine).execute("aapl")

        assert result.symbol == "AAPL"
        assert result.bar_count == 60
        assert result.as_of == date(2024, 2, 29)
        assert result.indicators.sma20 == pytest.approx(149.5)
        assert result.volatility is not None

    def test_reimport_replaces_bars(self, engine, make_bars) -> None:
        _import(engine, make_bars("AAPL", [100, 101, 102]))
        _import(engine, make_bars("AAPL", [200, 201, 202]))
        result = get_indicators_use_case(engine).execute("AAPL")
        assert result.bar_count == 3

    def test_invalid_bar_rejected(self, engine) -> None:
        bar = PriceBar(
            symbol="AAPL",
            date=date(2024, 1, 1),
            open=Decimal("10"),
            high=Decimal("9"),
            low=Decimal("11"),
            close=Decimal("10"),
            volume=100,
        )
        with pytest.raises(InvalidOrderError):
            _import(engine, [bar])

    def test_indicators_without_history(self, engine) -> None:
        with pytest.raises(NoMarketDataError):
            get_indicators_use_case(engine).execute("ZZZ")

    def test_quote_lookup(self, engine, clock) -> None:
        _tick(engine, clock, "123.45")
        assert get_quote_use_case(engine).execute("aapl").price == Decimal("123.45")
        with pytest.raises(SymbolNotFoundError):
            get_quote_use_case(engine).execute("ZZZ")

    def test_market_status(self, clock) -> None:
        use_case = get_market_status_use_case(clock)
        assert use_case.execute().is_open is True

        weekend = use_case.execute(at=datetime(2025, 1, 18, 15, 0))
        assert weekend.is_open is False
        assert weekend.session == MarketSession.CLOSED


class TestScanMarket:
    def test_matches_every_criterion(self, engine, clock, make_bars) -> None:
        _import(engine, make_bars("AAPL", [100 + i for i in range(60)]))
        _import(engine, make_bars("MSFT", [200 - i for i in range(60)]))
        _tick(engine, clock, "160")

        matches = get_scan_market_use_case(engine).execute(
            ScanMarketQuery(
                criteria=[ScanCriterion("rsi", "gt", 70)],
                symbols=["aapl", "msft"],
            )
        )

        assert [m.symbol for m in matches] == ["AAPL"]
        assert matches[0].price == Decimal("160")

    def test_falls_back_to_last_close(self, engine, make_bars) -> None:
        _import(engine, make_bars("MSFT", [200 - i for i in range(60)]))
        [match] = get_scan_market_use_case(engine).execute(
            ScanMarketQuery(criteria=[ScanCriterion("rsi", "lt", 30)], symbols=["MSFT"])
        )
        assert match.price == Decimal("141")

    def test_symbols_without_history_skipped(self, engine, clock) -> None:
        _tick(engine, clock, "100")
        matches = get_scan_market_use_case(engine).execute(
            ScanMarketQuery(criteria=[ScanCriterion("rsi", "gt", 0)])
        )
        assert matches == []

    def test_requires_criteria(self, engine) -> None:
        with pytest.raises(InvalidOrderError):
            get_scan_market_use_case(engine).execute(ScanMarketQuery(criteria=[]))


# =====================================================================
# Risk
# =====================================================================


class TestRiskUseCases:
    def test_validate_reports_adjusted_quantity(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        result = get_validate_trade_risk_use_case(engine, clock).execute(
            ValidateTradeRiskCommand(
                portfolio_id=portfolio.id,
                symbol="AAPL",
                side=OrderSide.BUY,
                quantity=300,
                price=Decimal("50"),
            )
        )
        assert result.allowed is False
        assert result.adjusted_quantity == 200

    def test_assigned_strategy_limits_apply(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        get_assign_strategy_use_case(engine).execute(portfolio.id)
        result = get_validate_trade_risk_use_case(engine, clock).execute(
            ValidateTradeRiskCommand(
                portfolio_id=portfolio.id,
                symbol="AAPL",
                side=OrderSide.BUY,
                quantity=300,
                price=Decimal("50"),
            )
        )
        assert result.allowed is True

    def test_validate_uses_quote_when_no_price(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        command = ValidateTradeRiskCommand(
            portfolio_id=portfolio.id, symbol="AAPL", side=OrderSide.BUY, quantity=10
        )
        with pytest.raises(SymbolNotFoundError):
            get_validate_trade_risk_use_case(engine, clock).execute(command)

        _tick(engine, clock, "100")
        assert get_validate_trade_risk_use_case(engine, clock).execute(command).allowed is True

    def test_position_size_from_portfolio(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        result = get_position_size_use_case(engine).execute(
            CalculatePositionSizeCommand(
                symbol="AAPL",
                method=SizingMethod.PERCENTAGE,
                portfolio_id=portfolio.id,
                price=Decimal("30"),
            )
        )
        assert result.quantity == 166

    def test_position_size_needs_value(self, engine) -> None:
        with pytest.raises(InvalidPositionSizeError):
            get_position_size_use_case(engine).execute(
                CalculatePositionSizeCommand(symbol="AAPL", method=SizingMethod.FIXED)
            )


# =====================================================================
# Rules
# =====================================================================


class TestRuleUseCases:
    def test_create_and_list(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        rule = _create_rule(engine, clock, portfolio)
        _create_rule(engine, clock, portfolio, name="paused", is_active=False)

        use_case = get_list_rules_use_case(engine)
        assert len(use_case.execute(portfolio_id=portfolio.id)) == 2
        [active] = use_case.execute(portfolio_id=portfolio.id, active_only=True)
        assert active.id == rule.id
        assert active.conditions[0].field == "current_price"
        assert active.actions[0].size_value == 10.0

    def test_create_for_unknown_portfolio(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        command = _rule_command(portfolio, portfolio_id=uuid4())
        with pytest.raises(PortfolioNotFoundError):
            get_create_rule_use_case(engine, clock).execute(command)

    def test_invalid_rule_lists_errors(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        with pytest.raises(InvalidRuleError) as exc_info:
            _create_rule(engine, clock, portfolio, conditions=[])
        assert exc_info.value.errors == ["Rule must have at least one condition"]

    def test_validate_only_warns(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        result = get_validate_rule_use_case().execute(_rule_command(portfolio, priority=None))
        assert result.is_valid is True
        assert result.warnings == ["No priority set, defaulting to 0"]
        assert get_list_rules_use_case(engine).execute() == []

    def test_delete(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        rule = _create_rule(engine, clock, portfolio)
        get_delete_rule_use_case(engine).execute(rule.id)
        assert get_list_rules_use_case(engine).execute() == []
        with pytest.raises(RuleNotFoundError):
            get_delete_rule_use_case(engine).execute(rule.id)


# =====================================================================
# Auto trading
# =====================================================================


class TestRunAutoTrading:
    def _run(self, engine, clock, portfolio, execute=False):
        return get_run_auto_trading_use_case(engine, clock).execute(
            RunAutoTradingCommand(portfolio_id=portfolio.id, execute=execute)
        )

    def test_proposes_without_executing(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio)

        report = self._run(engine, clock, portfolio)

        assert report.halted is False
        assert report.rules_evaluated == 1
        assert report.rules_triggered == 1
        [decision] = report.decisions
        assert decision.status == "proposed"
        assert decision.quantity == 10
        assert decision.price == Decimal("100")
        assert decision.order_id is None
        assert get_get_portfolio_use_case(engine).execute(portfolio.id).positions == {}

    def test_executes_market_order(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio)

        report = self._run(engine, clock, portfolio, execute=True)

        assert report.executed == 1
        assert report.decisions[0].order_id is not None
        loaded = get_get_portfolio_use_case(engine).execute(portfolio.id)
        assert loaded.positions["AAPL"].quantity == 10

    def test_oversized_buy_is_reduced(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio, size=500.0)

        [decision] = self._run(engine, clock, portfolio).decisions

        # 10% of 100 000 at the slipped market price 100.05
        assert decision.status == "proposed"
        assert decision.quantity == 99

    def test_reduced_buy_executes(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio, size=500.0)

        report = self._run(engine, clock, portfolio, execute=True)

        [decision] = report.decisions
        assert decision.status == "executed"
        assert decision.quantity == 99
        assert report.executed == 1
        loaded = get_get_portfolio_use_case(engine).execute(portfolio.id)
        assert loaded.positions["AAPL"].quantity == 99

    def test_sell_without_position_rejected(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio, side=OrderSide.SELL, size=5.0)

        report = self._run(engine, clock, portfolio, execute=True)

        assert report.rejected == 1
        assert report.decisions[0].status == "rejected"

    def test_condition_not_met(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "200")
        _create_rule(engine, clock, portfolio)

        report = self._run(engine, clock, portfolio)

        assert report.rules_evaluated == 1
        assert report.rules_triggered == 0
        assert report.decisions == []

    def test_emergency_stop_halts(self, engine, clock) -> None:
        portfolio = _portfolio(engine, clock)
        _tick(engine, clock, "100")
        _create_rule(engine, clock, portfolio)
        SnapshotRepositoryAdapter(engine).save(
            PortfolioSnapshot(
                portfolio_id=portfolio.id,
                taken_at=clock.now,
                total_value=Decimal("200000"),
                cash=Decimal("200000"),
            )
        )

        report = self._run(engine, clock, portfolio, execute=True)

        assert report.halted is True
        assert report.halt_reason.startswith("Emergency stop")
        assert report.decisions == []

    def test_unknown_portfolio(self, engine, clock) -> None:
        with pytest.raises(PortfolioNotFoundError):
            get_run_auto_trading_use_case(engine, clock).execute(
                RunAutoTradingCommand(portfolio_id=uuid4())
            )


# =====================================================================
# Backtests
# =====================================================================


def _backtest_command(**kwargs) -> RunBacktestCommand:
    values = dict(
        strategy_name="dip buyer",
        components=[
            StrategyComponent("price below", "entry", {"value": 95}),
            StrategyComponent("price above", "exit", {"value": 110}),
        ],
        symbols=["aapl"],
        start=date(2024, 1, 1),
        end=date(2024, 1, 5),
        initial_capital=10_000.0,
        sizing_method=SizingMethod.FIXED,
        sizing_value=10,
        commission=0.0,
        slippage=0.0,
    )
    values.update(kwargs)
    return RunBacktestCommand(**values)


class TestBacktestUseCases:
    def test_run_stores_report(self, engine, clock, make_bars) -> None:
        _import(engine, make_bars("AAPL", [100, 90, 100, 120, 100]))

        record = get_run_backtest_use_case(engine, clock).execute(_backtest_command())

        assert record.created_at == clock.now
        assert record.report["final_capital"] == pytest.approx(10_300.0)
        assert len(record.report["trades"]) == 2

        loaded = get_backtest_use_case(engine).execute(record.id)
        assert loaded.strategy_name == "dip buyer"
        assert loaded.report["final_capital"] == pytest.approx(10_300.0)
        assert [r.id for r in get_list_backtests_use_case(engine).execute()] == [record.id]

    def test_date_window_limits_bars(self, engine, clock, make_bars) -> None:
        _import(engine, make_bars("AAPL", [100, 90, 100, 120, 100]))
        record = get_run_backtest_use_case(engine, clock).execute(
            _backtest_command(end=date(2024, 1, 3))
        )
        assert [t["side"] for t in record.report["trades"]] == ["buy"]
        assert len(record.report["equity_curve"]) == 3

    def test_no_history(self, engine, clock) -> None:
        with pytest.raises(NoMarketDataError):
            get_run_backtest_use_case(engine, clock).execute(_backtest_command())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"symbols": []},
            {"components": []},
            {"sizing_method": SizingMethod.KELLY},
        ],
    )
    def test_invalid_command(self, engine, clock, overrides) -> None:
        with pytest.raises(InvalidOrderError):
            get_run_backtest_use_case(engine, clock).execute(_backtest_command(**overrides))

    def test_unknown_backtest(self, engine) -> None:
        with pytest.raises(BacktestNotFoundError):
            get_backtest_use_case(engine).execute(uuid4())
