"""
Dependency injection for the trading bounded context.

Provides FastAPI dependency functions that wire infrastructure
adapters into use cases via constructor injection.
These are the composition root for the trading context.

Every provider takes the engine and clock as ordinary parameters, so
the background scheduler can call them directly outside a request.
Tests override ``get_engine`` and ``get_clock``.
"""

import logging
from functools import lru_cache
from typing import Callable

from fastapi import Depends
from sqlalchemy.engine import Engine

from app.application.trading.assess_risk import (
    CalculatePositionSizeUseCase,
    ValidateTradeRiskUseCase,
)
from app.application.trading.dtos import RunAutoTradingCommand
from app.application.trading.execute_trade import ExecuteTradeUseCase, ListTradesUseCase
from app.application.trading.get_portfolio_performance import (
    GetPortfolioPerformanceUseCase,
)
from app.application.trading.manage_orders import (
    CancelOrderUseCase,
    ExpireOrdersUseCase,
    ListOrdersUseCase,
)
from app.application.trading.manage_portfolios import (
    AssignStrategyUseCase,
    CreatePortfolioUseCase,
    DeletePortfolioUseCase,
    GetPortfolioUseCase,
    ListPortfoliosUseCase,
)
from app.application.trading.manage_rules import (
    CreateTradingRuleUseCase,
    DeleteTradingRuleUseCase,
    ListTradingRulesUseCase,
    ValidateTradingRuleUseCase,
)
from app.application.trading.market_data import (
    GetIndicatorsUseCase,
    GetMarketStatusUseCase,
    GetQuoteUseCase,
    ImportPriceHistoryUseCase,
)
from app.application.trading.order_processor import OrderProcessor
from app.application.trading.place_order import (
    PlaceBracketOrderUseCase,
    PlaceOrderUseCase,
)
from app.application.trading.process_market_tick import ProcessMarketTickUseCase
from app.application.trading.risk_policy import RiskPolicy
from app.application.trading.run_auto_trading import RunAutoTradingUseCase
from app.application.trading.run_backtest import (
    GetBacktestUseCase,
    ListBacktestsUseCase,
    RunBacktestUseCase,
)
from app.application.trading.scan_market import ScanMarketUseCase
from app.application.trading.trade_executor import TradeExecutor
from app.core.config import settings
from app.domain.trading.backtesting import BacktestService
from app.domain.trading.entities import utc_now
from app.domain.trading.errors import TradingDomainError
from app.domain.trading.execution import ExecutionCosts, OrderExecutionService
from app.domain.trading.indicators import TechnicalIndicatorService
from app.domain.trading.ledger import PortfolioLedger
from app.domain.trading.market_hours import MarketHoursService
from app.domain.trading.performance import PerformanceCalculator
from app.domain.trading.position_sizing import PositionSizingService
from app.domain.trading.risk import RiskParameters
from app.domain.trading.rules import RuleEngine
from app.domain.trading.strategy_assignment import StrategyAssignmentService
from app.infrastructure.scheduling.auto_trading_scheduler import AutoTradingScheduler
from app.infrastructure.trading.backtest_repository import BacktestRepositoryAdapter
from app.infrastructure.trading.database import build_engine
from app.infrastructure.trading.order_repository import OrderRepositoryAdapter
from app.infrastructure.trading.portfolio_repository import PortfolioRepositoryAdapter
from app.infrastructure.trading.price_history_repository import (
    PriceHistoryRepositoryAdapter,
)
from app.infrastructure.trading.snapshot_repository import SnapshotRepositoryAdapter
from app.infrastructure.trading.stock_quote_repository import (
    StockQuoteRepositoryAdapter,
)
from app.infrastructure.trading.trade_repository import TradeRepositoryAdapter
from app.infrastructure.trading.trading_rule_repository import (
    TradingRuleRepositoryAdapter,
)

logger = logging.getLogger(__name__)

# ── Shared stateless services ────────────────────────────────

market_hours = MarketHoursService()
indicators = TechnicalIndicatorService()
sizing = PositionSizingService()
rule_engine = RuleEngine(sizing)
assignment = StrategyAssignmentService()
calculator = PerformanceCalculator()
backtester = BacktestService(indicators, calculator)
execution = OrderExecutionService(
    ExecutionCosts(
        per_share_fee=settings.commission_per_share,
        percentage_fee=settings.commission_percentage,
        minimum_fee=settings.commission_minimum,
        maximum_fee=settings.commission_maximum,
        slippage_enabled=settings.slippage_enabled,
        slippage_basis_points=settings.slippage_basis_points,
        slippage_max=settings.slippage_max,
    )
)
ledger = PortfolioLedger(
    pdt_minimum_equity=settings.pdt_minimum_equity,
    max_day_trades=settings.pdt_max_day_trades,
)
risk_policy = RiskPolicy(
    RiskParameters(
        max_position_pct=settings.risk_max_position_pct,
        max_daily_loss=settings.risk_max_daily_loss,
        max_open_positions=settings.risk_max_open_positions,
        volatility_threshold=settings.risk_volatility_threshold,
        emergency_drawdown_pct=settings.risk_emergency_drawdown_pct,
    ),
    assignment,
)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Build the SQLAlchemy engine once from application settings."""
    return build_engine(settings.get_database_dsn())


def get_clock() -> Callable:
    return utc_now


def _executor(engine: Engine) -> TradeExecutor:
    return TradeExecutor(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        trade_repo=TradeRepositoryAdapter(engine),
        snapshot_repo=SnapshotRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        ledger=ledger,
        execution=execution,
    )


def _processor(engine: Engine) -> OrderProcessor:
    return OrderProcessor(
        order_repo=OrderRepositoryAdapter(engine),
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        executor=_executor(engine),
        execution=execution,
        max_volume_participation=settings.max_volume_participation,
    )


# ── Portfolios ───────────────────────────────────────────────


def get_create_portfolio_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> CreatePortfolioUseCase:
    return CreatePortfolioUseCase(PortfolioRepositoryAdapter(engine), _executor(engine), clock)


def get_get_portfolio_use_case(engine: Engine = Depends(get_engine)) -> GetPortfolioUseCase:
    return GetPortfolioUseCase(PortfolioRepositoryAdapter(engine), _executor(engine))


def get_list_portfolios_use_case(engine: Engine = Depends(get_engine)) -> ListPortfoliosUseCase:
    return ListPortfoliosUseCase(PortfolioRepositoryAdapter(engine), _executor(engine))


def get_delete_portfolio_use_case(engine: Engine = Depends(get_engine)) -> DeletePortfolioUseCase:
    return DeletePortfolioUseCase(PortfolioRepositoryAdapter(engine))


def get_portfolio_performance_use_case(
    engine: Engine = Depends(get_engine),
) -> GetPortfolioPerformanceUseCase:
    return GetPortfolioPerformanceUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        snapshot_repo=SnapshotRepositoryAdapter(engine),
        trade_repo=TradeRepositoryAdapter(engine),
        executor=_executor(engine),
        calculator=calculator,
    )


def get_assign_strategy_use_case(engine: Engine = Depends(get_engine)) -> AssignStrategyUseCase:
    return AssignStrategyUseCase(PortfolioRepositoryAdapter(engine), _executor(engine), assignment)


# ── Trades and orders ────────────────────────────────────────


def get_execute_trade_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> ExecuteTradeUseCase:
    return ExecuteTradeUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        executor=_executor(engine),
        execution=execution,
        risk_policy=risk_policy,
        market_hours=market_hours,
        enforce_market_hours=settings.enforce_market_hours,
        clock=clock,
    )


def get_list_trades_use_case(engine: Engine = Depends(get_engine)) -> ListTradesUseCase:
    return ListTradesUseCase(PortfolioRepositoryAdapter(engine), TradeRepositoryAdapter(engine))


def get_place_order_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> PlaceOrderUseCase:
    return PlaceOrderUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        order_repo=OrderRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        executor=_executor(engine),
        processor=_processor(engine),
        execution=execution,
        risk_policy=risk_policy,
        market_hours=market_hours,
        enforce_market_hours=settings.enforce_market_hours,
        clock=clock,
    )


def get_place_bracket_order_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> PlaceBracketOrderUseCase:
    return PlaceBracketOrderUseCase(
        place_order=get_place_order_use_case(engine, clock),
        order_repo=OrderRepositoryAdapter(engine),
        processor=_processor(engine),
        clock=clock,
    )


def get_cancel_order_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> CancelOrderUseCase:
    return CancelOrderUseCase(OrderRepositoryAdapter(engine), _processor(engine), clock)


def get_list_orders_use_case(engine: Engine = Depends(get_engine)) -> ListOrdersUseCase:
    return ListOrdersUseCase(OrderRepositoryAdapter(engine))


def get_expire_orders_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> ExpireOrdersUseCase:
    return ExpireOrdersUseCase(
        OrderRepositoryAdapter(engine), _processor(engine), market_hours, clock
    )


# ── Market data ──────────────────────────────────────────────


def get_process_market_tick_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> ProcessMarketTickUseCase:
    return ProcessMarketTickUseCase(
        quote_repo=StockQuoteRepositoryAdapter(engine),
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        order_repo=OrderRepositoryAdapter(engine),
        executor=_executor(engine),
        processor=_processor(engine),
        clock=clock,
    )


def get_quote_use_case(engine: Engine = Depends(get_engine)) -> GetQuoteUseCase:
    return GetQuoteUseCase(StockQuoteRepositoryAdapter(engine))


def get_import_price_history_use_case(
    engine: Engine = Depends(get_engine),
) -> ImportPriceHistoryUseCase:
    return ImportPriceHistoryUseCase(PriceHistoryRepositoryAdapter(engine))


def get_indicators_use_case(engine: Engine = Depends(get_engine)) -> GetIndicatorsUseCase:
    return GetIndicatorsUseCase(PriceHistoryRepositoryAdapter(engine), indicators)


def get_scan_market_use_case(engine: Engine = Depends(get_engine)) -> ScanMarketUseCase:
    return ScanMarketUseCase(
        StockQuoteRepositoryAdapter(engine), PriceHistoryRepositoryAdapter(engine), indicators
    )


def get_market_status_use_case(clock: Callable = Depends(get_clock)) -> GetMarketStatusUseCase:
    return GetMarketStatusUseCase(market_hours, clock)


# ── Risk ─────────────────────────────────────────────────────


def get_validate_trade_risk_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> ValidateTradeRiskUseCase:
    return ValidateTradeRiskUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        history_repo=PriceHistoryRepositoryAdapter(engine),
        executor=_executor(engine),
        risk_policy=risk_policy,
        indicators=indicators,
        clock=clock,
    )


def get_position_size_use_case(
    engine: Engine = Depends(get_engine),
) -> CalculatePositionSizeUseCase:
    return CalculatePositionSizeUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        history_repo=PriceHistoryRepositoryAdapter(engine),
        executor=_executor(engine),
        sizing=sizing,
        indicators=indicators,
    )


# ── Automation ───────────────────────────────────────────────


def get_create_rule_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> CreateTradingRuleUseCase:
    return CreateTradingRuleUseCase(
        PortfolioRepositoryAdapter(engine), TradingRuleRepositoryAdapter(engine), rule_engine, clock
    )


def get_validate_rule_use_case() -> ValidateTradingRuleUseCase:
    return ValidateTradingRuleUseCase(rule_engine)


def get_list_rules_use_case(engine: Engine = Depends(get_engine)) -> ListTradingRulesUseCase:
    return ListTradingRulesUseCase(TradingRuleRepositoryAdapter(engine))


def get_delete_rule_use_case(engine: Engine = Depends(get_engine)) -> DeleteTradingRuleUseCase:
    return DeleteTradingRuleUseCase(TradingRuleRepositoryAdapter(engine))


def get_run_auto_trading_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> RunAutoTradingUseCase:
    return RunAutoTradingUseCase(
        portfolio_repo=PortfolioRepositoryAdapter(engine),
        rule_repo=TradingRuleRepositoryAdapter(engine),
        quote_repo=StockQuoteRepositoryAdapter(engine),
        history_repo=PriceHistoryRepositoryAdapter(engine),
        snapshot_repo=SnapshotRepositoryAdapter(engine),
        executor=_executor(engine),
        engine=rule_engine,
        indicators=indicators,
        risk_policy=risk_policy,
        market_hours=market_hours,
        place_order=get_place_order_use_case(engine, clock),
        clock=clock,
    )


# ── Backtests ────────────────────────────────────────────────


def get_run_backtest_use_case(
    engine: Engine = Depends(get_engine), clock: Callable = Depends(get_clock)
) -> RunBacktestUseCase:
    return RunBacktestUseCase(
        PriceHistoryRepositoryAdapter(engine), BacktestRepositoryAdapter(engine), backtester, clock
    )


def get_backtest_use_case(engine: Engine = Depends(get_engine)) -> GetBacktestUseCase:
    return GetBacktestUseCase(BacktestRepositoryAdapter(engine))


def get_list_backtests_use_case(engine: Engine = Depends(get_engine)) -> ListBacktestsUseCase:
    return ListBacktestsUseCase(BacktestRepositoryAdapter(engine))


# ── Background jobs ──────────────────────────────────────────


def build_scheduler(engine: Engine) -> AutoTradingScheduler:
    """Wire the background jobs to use cases built on ``engine``."""

    def poll_orders() -> dict:
        trades = get_process_market_tick_use_case(engine, utc_now).reprocess_open_orders()
        return {"fills": len(trades)}

    def run_auto_trading() -> dict:
        rules = TradingRuleRepositoryAdapter(engine).list_rules(active_only=True)
        active = {p.id for p in PortfolioRepositoryAdapter(engine).list_all(active_only=True)}
        use_case = get_run_auto_trading_use_case(engine, utc_now)
        executed = 0
        failed = 0
        portfolios = sorted({r.portfolio_id for r in rules} & active, key=str)
        for portfolio_id in portfolios:
            try:
                report = use_case.execute(
                    RunAutoTradingCommand(portfolio_id=portfolio_id, execute=True)
                )
            except TradingDomainError as exc:
                logger.warning("Auto trading for portfolio %s failed: %s", portfolio_id, exc.message)
                failed += 1
                continue
            executed += report.executed
        return {"portfolios": len(portfolios), "executed": executed, "failed": failed}

    def expire_orders() -> dict:
        return {"expired": len(get_expire_orders_use_case(engine, utc_now).execute())}

    return AutoTradingScheduler(
        poll_orders=poll_orders,
        run_auto_trading=run_auto_trading,
        expire_orders=expire_orders,
        is_market_open=market_hours.is_market_open,
        order_poll_seconds=settings.order_poll_seconds,
        auto_trading_poll_seconds=settings.auto_trading_poll_seconds,
    )
