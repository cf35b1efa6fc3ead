"""
FastAPI routers for the trading bounded context.

All routes delegate to use cases. No business logic here.
Input validation is handled by Pydantic schemas.
Error mapping is handled by centralized error handlers.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, Response, status

from app.application.trading.assess_risk import (
    CalculatePositionSizeUseCase,
    ValidateTradeRiskUseCase,
)
from app.application.trading.dtos import (
    AutoTradingReport,
    BacktestRecord,
    CalculatePositionSizeCommand,
    CreatePortfolioCommand,
    CreateTradingRuleCommand,
    ExecuteTradeCommand,
    ImportPriceHistoryCommand,
    MarketTickCommand,
    PlaceBracketOrderCommand,
    PlaceOrderCommand,
    RunAutoTradingCommand,
    RunBacktestCommand,
    ScanCriterion,
    ScanMarketQuery,
    ValidateTradeRiskCommand,
)
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
from app.application.trading.place_order import (
    PlaceBracketOrderUseCase,
    PlaceOrderUseCase,
)
from app.application.trading.process_market_tick import ProcessMarketTickUseCase
from app.application.trading.run_auto_trading import RunAutoTradingUseCase
from app.application.trading.run_backtest import (
    GetBacktestUseCase,
    ListBacktestsUseCase,
    RunBacktestUseCase,
)
from app.application.trading.scan_market import ScanMarketUseCase
from app.domain.trading.backtesting import StrategyComponent
from app.domain.trading.entities import (
    Order,
    OrderStatus,
    Portfolio,
    PriceBar,
    RuleAction,
    RuleCondition,
    Trade,
    TradingRule,
)
from app.domain.trading.performance import finite_or_none
from app.domain.trading.position_sizing import SizingParams
from app.interfaces.trading.dependencies import (
    assignment,
    get_assign_strategy_use_case,
    get_backtest_use_case,
    get_cancel_order_use_case,
    get_create_portfolio_use_case,
    get_create_rule_use_case,
    get_delete_portfolio_use_case,
    get_delete_rule_use_case,
    get_execute_trade_use_case,
    get_expire_orders_use_case,
    get_get_portfolio_use_case,
    get_import_price_history_use_case,
    get_indicators_use_case,
    get_list_backtests_use_case,
    get_list_orders_use_case,
    get_list_portfolios_use_case,
    get_list_rules_use_case,
    get_list_trades_use_case,
    get_market_status_use_case,
    get_place_bracket_order_use_case,
    get_place_order_use_case,
    get_portfolio_performance_use_case,
    get_position_size_use_case,
    get_process_market_tick_use_case,
    get_quote_use_case,
    get_run_auto_trading_use_case,
    get_run_backtest_use_case,
    get_scan_market_use_case,
    get_validate_rule_use_case,
    get_validate_trade_risk_use_case,
)
from app.interfaces.trading.schemas import (
    AutomationReportResponse,
    AutoTradeDecisionItem,
    BacktestListResponse,
    BacktestResponse,
    BacktestSummaryItem,
    BracketOrderResponse,
    CreatePortfolioRequest,
    CreateRuleRequest,
    ErrorResponse,
    ExecuteTradeRequest,
    ImportBarsRequest,
    ImportBarsResponse,
    IndicatorsResponse,
    MarketStatusResponse,
    MarketTickRequest,
    MarketTickResponse,
    OrderItem,
    OrderListResponse,
    PerformanceResponse,
    PlaceBracketOrderRequest,
    PlaceOrderRequest,
    PortfolioListResponse,
    PortfolioResponse,
    PositionItem,
    PositionSizeRequest,
    PositionSizeResponse,
    QuoteResponse,
    RiskCheckResponse,
    RuleActionItem,
    RuleConditionItem,
    RuleListResponse,
    RuleResponse,
    RuleValidationResponse,
    RunAutomationRequest,
    RunBacktestRequest,
    ScanMatchItem,
    ScanRequest,
    ScanResponse,
    StrategyAssignmentResponse,
    TradeItem,
    TradeListResponse,
    ValidateRiskRequest,
)
from app.shared.security.rate_limiting import HEAVY_RATE_LIMIT, limiter

NOT_FOUND = {404: {"model": ErrorResponse}}
REJECTED = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


# ------------------------------------------------------------------
# Entity -> schema mapping
# ------------------------------------------------------------------


def _portfolio(p: Portfolio) -> PortfolioResponse:
    return PortfolioResponse(
        id=p.id,
        name=p.name,
        initial_cash=p.initial_cash,
        current_cash=p.current_cash,
        positions_value=p.positions_value,
        total_value=p.total_value,
        total_pnl=p.total_pnl,
        total_return_pct=p.total_return_pct,
        realized_pnl=p.realized_pnl,
        risk_profile=p.risk_profile,
        day_trading_enabled=p.day_trading_enabled,
        day_trade_count=p.day_trade_count,
        assigned_strategy=p.assigned_strategy,
        is_active=p.is_active,
        created_at=p.created_at,
        positions=[
            PositionItem(
                symbol=pos.symbol,
                quantity=pos.quantity,
                average_price=pos.average_price,
                current_price=pos.current_price,
                market_value=pos.market_value,
                unrealized_pnl=pos.unrealized_pnl,
                unrealized_pnl_pct=pos.unrealized_pnl_pct,
                opened_at=pos.opened_at,
            )
            for pos in sorted(p.positions.values(), key=lambda x: x.symbol)
        ],
    )


def _trade(t: Trade) -> TradeItem:
    return TradeItem(
        id=t.id,
        portfolio_id=t.portfolio_id,
        symbol=t.symbol,
        side=t.side,
        quantity=t.quantity,
        price=t.price,
        commission=t.commission,
        realized_pnl=t.realized_pnl,
        executed_at=t.executed_at,
        order_id=t.order_id,
    )


def _order(o: Order) -> OrderItem:
    return OrderItem(
        id=o.id,
        portfolio_id=o.portfolio_id,
        symbol=o.symbol,
        order_type=o.order_type,
        side=o.side,
        quantity=o.quantity,
        filled_quantity=o.filled_quantity,
        remaining_quantity=o.remaining_quantity,
        status=o.status,
        time_in_force=o.time_in_force,
        limit_price=o.limit_price,
        stop_price=o.stop_price,
        trigger_price=o.trigger_price,
        trail_amount=o.trail_amount,
        trail_percent=o.trail_percent,
        average_fill_price=o.average_fill_price,
        commission=o.commission,
        oco_group_id=o.oco_group_id,
        parent_order_id=o.parent_order_id,
        expires_at=o.expires_at,
        created_at=o.created_at,
        updated_at=o.updated_at,
        executed_at=o.executed_at,
        cancelled_at=o.cancelled_at,
        cancellation_reason=o.cancellation_reason,
    )


def _rule(r: TradingRule) -> RuleResponse:
    return RuleResponse(
        id=r.id,
        portfolio_id=r.portfolio_id,
        name=r.name,
        rule_type=r.rule_type,
        priority=r.priority,
        is_active=r.is_active,
        conditions=[
            RuleConditionItem(field=c.field, operator=c.operator, value=c.value, logical=c.logical)
            for c in r.conditions
        ],
        actions=[
            RuleActionItem(
                side=a.side,
                sizing_method=a.sizing_method,
                size_value=a.size_value,
                price_type=a.price_type,
                price_offset=a.price_offset,
            )
            for a in r.actions
        ],
        created_at=r.created_at,
    )


def _rule_command(request: CreateRuleRequest) -> CreateTradingRuleCommand:
    return CreateTradingRuleCommand(
        portfolio_id=request.portfolio_id,
        name=request.name,
        rule_type=request.rule_type,
        priority=request.priority,
        is_active=request.is_active,
        conditions=[
            RuleCondition(field=c.field, operator=c.operator, value=c.value, logical=c.logical)
            for c in request.conditions
        ],
        actions=[
            RuleAction(
                side=a.side,
                sizing_method=a.sizing_method,
                size_value=a.size_value,
                price_type=a.price_type,
                price_offset=a.price_offset,
            )
            for a in request.actions
        ],
    )


def _finite(values: dict[str, Any]) -> dict[str, Optional[float]]:
    return {k: None if v is None else finite_or_none(float(v)) for k, v in values.items()}


def _report(report: AutoTradingReport) -> AutomationReportResponse:
    return AutomationReportResponse(
        portfolio_id=report.portfolio_id,
        halted=report.halted,
        halt_reason=report.halt_reason,
        rules_evaluated=report.rules_evaluated,
        rules_triggered=report.rules_triggered,
        proposed=report.proposed,
        executed=report.executed,
        rejected=report.rejected,
        decisions=[
            AutoTradeDecisionItem(
                rule_name=d.rule_name,
                symbol=d.symbol,
                side=d.side,
                quantity=d.quantity,
                price=d.price,
                status=d.status,
                reason=d.reason,
                order_id=d.order_id,
            )
            for d in report.decisions
        ],
    )


def _backtest(record: BacktestRecord) -> BacktestResponse:
    return BacktestResponse(
        id=record.id,
        strategy_name=record.strategy_name,
        created_at=record.created_at,
        report=record.report,
    )


# ------------------------------------------------------------------
# Portfolios and trades
# ------------------------------------------------------------------

portfolio_router = APIRouter(prefix="/portfolios", tags=["portfolios"])


@portfolio_router.post(
    "",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
    summary="Create a paper portfolio",
)
def create_portfolio(
    request: CreatePortfolioRequest,
    use_case: CreatePortfolioUseCase = Depends(get_create_portfolio_use_case),
) -> PortfolioResponse:
    portfolio = use_case.execute(
        CreatePortfolioCommand(
            name=request.name,
            initial_cash=request.initial_cash,
            risk_profile=request.risk_profile,
            day_trading_enabled=request.day_trading_enabled,
        )
    )
    return _portfolio(portfolio)


@portfolio_router.get("", response_model=PortfolioListResponse, summary="List portfolios")
def list_portfolios(
    use_case: ListPortfoliosUseCase = Depends(get_list_portfolios_use_case),
) -> PortfolioListResponse:
    return PortfolioListResponse(portfolios=[_portfolio(p) for p in use_case.execute()])


@portfolio_router.get(
    "/{portfolio_id}",
    response_model=PortfolioResponse,
    responses=NOT_FOUND,
    summary="Get a portfolio",
    description="Returns the portfolio with positions marked to the latest quotes.",
)
def get_portfolio(
    portfolio_id: UUID,
    use_case: GetPortfolioUseCase = Depends(get_get_portfolio_use_case),
) -> PortfolioResponse:
    return _portfolio(use_case.execute(portfolio_id))


@portfolio_router.delete(
    "/{portfolio_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
    summary="Delete a portfolio and everything it owns",
)
def delete_portfolio(
    portfolio_id: UUID,
    use_case: DeletePortfolioUseCase = Depends(get_delete_portfolio_use_case),
) -> Response:
    use_case.execute(portfolio_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@portfolio_router.get(
    "/{portfolio_id}/performance",
    response_model=PerformanceResponse,
    responses=NOT_FOUND,
    summary="Portfolio performance metrics",
)
def get_performance(
    portfolio_id: UUID,
    use_case: GetPortfolioPerformanceUseCase = Depends(get_portfolio_performance_use_case),
) -> PerformanceResponse:
    result = use_case.execute(portfolio_id)
    return PerformanceResponse(
        portfolio_id=result.portfolio_id,
        total_value=result.total_value,
        total_pnl=result.total_pnl,
        total_return_pct=result.total_return_pct,
        realized_pnl=result.realized_pnl,
        unrealized_pnl=result.unrealized_pnl,
        snapshot_count=result.snapshot_count,
        metrics=_finite(result.metrics.to_dict()),
        statistics=_finite(result.statistics.to_dict()),
    )


@portfolio_router.post(
    "/{portfolio_id}/trades",
    response_model=TradeItem,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTED,
    summary="Execute a market trade",
    description="Fills immediately at the latest quote with slippage and commission.",
)
def execute_trade(
    portfolio_id: UUID,
    request: ExecuteTradeRequest,
    use_case: ExecuteTradeUseCase = Depends(get_execute_trade_use_case),
) -> TradeItem:
    trade = use_case.execute(
        ExecuteTradeCommand(
            portfolio_id=portfolio_id,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
        )
    )
    return _trade(trade)


@portfolio_router.get(
    "/{portfolio_id}/trades",
    response_model=TradeListResponse,
    responses=NOT_FOUND,
    summary="List trades, newest first",
)
def list_trades(
    portfolio_id: UUID,
    limit: int = Query(default=100, ge=1, le=1000),
    use_case: ListTradesUseCase = Depends(get_list_trades_use_case),
) -> TradeListResponse:
    return TradeListResponse(trades=[_trade(t) for t in use_case.execute(portfolio_id, limit)])


@portfolio_router.post(
    "/{portfolio_id}/strategy",
    response_model=StrategyAssignmentResponse,
    responses=NOT_FOUND,
    summary="Assign a strategy by account size",
)
def assign_strategy(
    portfolio_id: UUID,
    use_case: AssignStrategyUseCase = Depends(get_assign_strategy_use_case),
) -> StrategyAssignmentResponse:
    portfolio, profile = use_case.execute(portfolio_id)
    limits = assignment.risk_limits_for(profile, portfolio.total_value)
    return StrategyAssignmentResponse(
        portfolio_id=portfolio.id,
        strategy_id=profile.id,
        name=profile.name,
        description=profile.description,
        style=profile.style,
        risk_level=profile.risk_level,
        max_positions=profile.max_positions,
        stop_loss_pct=profile.stop_loss_pct,
        take_profit_pct=profile.take_profit_pct,
        execution_frequency=profile.execution_frequency,
        max_drawdown_pct=limits.max_drawdown_pct,
        max_position_pct=limits.max_position_pct,
        daily_loss_limit=limits.daily_loss_limit,
    )


# ------------------------------------------------------------------
# Orders
# ------------------------------------------------------------------

order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post(
    "",
    response_model=OrderItem,
    status_code=status.HTTP_201_CREATED,
    responses={**REJECTED, 422: {"model": ErrorResponse}},
    summary="Place an order",
    description="Stores the order and evaluates it once against the latest quote.",
)
def place_order(
    request: PlaceOrderRequest,
    use_case: PlaceOrderUseCase = Depends(get_place_order_use_case),
) -> OrderItem:
    order = use_case.execute(
        PlaceOrderCommand(
            portfolio_id=request.portfolio_id,
            symbol=request.symbol,
            side=request.side,
            order_type=request.order_type,
            quantity=request.quantity,
            limit_price=request.limit_price,
            stop_price=request.stop_price,
            trigger_price=request.trigger_price,
            trail_amount=request.trail_amount,
            trail_percent=request.trail_percent,
            time_in_force=request.time_in_force,
            expires_at=request.expires_at,
        )
    )
    return _order(order)


@order_router.post(
    "/bracket",
    response_model=BracketOrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**REJECTED, 422: {"model": ErrorResponse}},
    summary="Place a bracket order",
)
def place_bracket_order(
    request: PlaceBracketOrderRequest,
    use_case: PlaceBracketOrderUseCase = Depends(get_place_bracket_order_use_case),
) -> BracketOrderResponse:
    entry, legs = use_case.execute(
        PlaceBracketOrderCommand(
            portfolio_id=request.portfolio_id,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            take_profit_price=request.take_profit_price,
            stop_loss_price=request.stop_loss_price,
            entry_type=request.entry_type,
            limit_price=request.limit_price,
            time_in_force=request.time_in_force,
        )
    )
    return BracketOrderResponse(entry=_order(entry), legs=[_order(o) for o in legs])


@order_router.get("", response_model=OrderListResponse, summary="List orders, newest first")
def list_orders(
    portfolio_id: Optional[UUID] = None,
    order_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case),
) -> OrderListResponse:
    orders = use_case.execute(portfolio_id=portfolio_id, status=order_status)
    return OrderListResponse(orders=[_order(o) for o in orders])


@order_router.delete(
    "/{order_id}",
    response_model=OrderItem,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Cancel an open order",
)
def cancel_order(
    order_id: UUID,
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case),
) -> OrderItem:
    return _order(use_case.execute(order_id))


@order_router.post(
    "/expire",
    response_model=OrderListResponse,
    summary="Expire DAY and GTC orders that are past their lifetime",
)
def expire_orders(
    use_case: ExpireOrdersUseCase = Depends(get_expire_orders_use_case),
) -> OrderListResponse:
    return OrderListResponse(orders=[_order(o) for o in use_case.execute()])


# ------------------------------------------------------------------
# Market data
# ------------------------------------------------------------------

market_router = APIRouter(prefix="/market", tags=["market"])


SymbolPath = Path(..., min_length=1, max_length=10, description="US stock ticker symbol")


@market_router.put(
    "/quotes/{symbol}",
    response_model=MarketTickResponse,
    responses={422: {"model": ErrorResponse}},
    summary="Push a market price",
    description=(
        "Updates the quote, marks holding portfolios to market and "
        "evaluates open orders for the symbol."
    ),
)
def push_quote(
    request: MarketTickRequest,
    symbol: str = SymbolPath,
    use_case: ProcessMarketTickUseCase = Depends(get_process_market_tick_use_case),
) -> MarketTickResponse:
    result = use_case.execute(
        MarketTickCommand(
            symbol=symbol,
            price=request.price,
            volume=request.volume,
            previous_close=request.previous_close,
        )
    )
    return MarketTickResponse(
        symbol=result.symbol,
        price=result.price,
        portfolios_marked=result.portfolios_marked,
        orders_evaluated=result.orders_evaluated,
        trades=[_trade(t) for t in result.trades],
    )


@market_router.get(
    "/quotes/{symbol}",
    response_model=QuoteResponse,
    responses=NOT_FOUND,
    summary="Latest quote for a symbol",
)
def get_quote(
    symbol: str = SymbolPath,
    use_case: GetQuoteUseCase = Depends(get_quote_use_case),
) -> QuoteResponse:
    quote = use_case.execute(symbol.upper())
    return QuoteResponse(
        symbol=quote.symbol,
        price=quote.price,
        previous_close=quote.previous_close,
        change=quote.change,
        change_percent=quote.change_percent,
        volume=quote.volume,
        updated_at=quote.updated_at,
    )


@market_router.post(
    "/bars",
    response_model=ImportBarsResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
    summary="Import daily price bars",
)
def import_bars(
    request: ImportBarsRequest,
    use_case: ImportPriceHistoryUseCase = Depends(get_import_price_history_use_case),
) -> ImportBarsResponse:
    bars = [
        PriceBar(
            symbol=b.symbol,
            date=b.date,
            open=b.open,
            high=b.high,
            low=b.low,
            close=b.close,
            volume=b.volume,
        )
        for b in request.bars
    ]
    return ImportBarsResponse(imported=use_case.execute(ImportPriceHistoryCommand(bars=bars)))


@market_router.get(
    "/indicators/{symbol}",
    response_model=IndicatorsResponse,
    responses=NOT_FOUND,
    summary="Technical indicators for a symbol",
)
def get_indicators(
    symbol: str = SymbolPath,
    use_case: GetIndicatorsUseCase = Depends(get_indicators_use_case),
) -> IndicatorsResponse:
    result = use_case.execute(symbol.upper())
    return IndicatorsResponse(
        symbol=result.symbol,
        bar_count=result.bar_count,
        as_of=result.as_of,
        volatility=result.volatility,
        indicators=result.indicators.to_dict(),
    )


@market_router.post(
    "/scan",
    response_model=ScanResponse,
    responses={422: {"model": ErrorResponse}},
    summary="Scan symbols for indicator criteria",
)
def scan_market(
    request: ScanRequest,
    use_case: ScanMarketUseCase = Depends(get_scan_market_use_case),
) -> ScanResponse:
    matches = use_case.execute(
        ScanMarketQuery(
            criteria=[
                ScanCriterion(field=c.field, operator=c.operator, value=c.value)
                for c in request.criteria
            ],
            symbols=[s.upper() for s in request.symbols] if request.symbols else None,
        )
    )
    return ScanResponse(
        matches=[
            ScanMatchItem(symbol=m.symbol, price=m.price, indicators=m.indicators.to_dict())
            for m in matches
        ]
    )


@market_router.get("/status", response_model=MarketStatusResponse, summary="US market session")
def market_status(
    use_case: GetMarketStatusUseCase = Depends(get_market_status_use_case),
) -> MarketStatusResponse:
    result = use_case.execute()
    return MarketStatusResponse(
        is_open=result.is_open,
        session=result.session.value,
        next_open=result.next_open,
        next_close=result.next_close,
        reason=result.reason,
    )


# ------------------------------------------------------------------
# Risk
# ------------------------------------------------------------------

risk_router = APIRouter(prefix="/risk", tags=["risk"])


@risk_router.post(
    "/validate",
    response_model=RiskCheckResponse,
    responses=NOT_FOUND,
    summary="Check a prospective trade against risk limits",
)
def validate_risk(
    request: ValidateRiskRequest,
    use_case: ValidateTradeRiskUseCase = Depends(get_validate_trade_risk_use_case),
) -> RiskCheckResponse:
    result = use_case.execute(
        ValidateTradeRiskCommand(
            portfolio_id=request.portfolio_id,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            price=request.price,
        )
    )
    return RiskCheckResponse(
        allowed=result.allowed,
        reason=result.reason,
        adjusted_quantity=result.adjusted_quantity,
        warnings=list(result.warnings),
    )


@risk_router.post(
    "/position-size",
    response_model=PositionSizeResponse,
    responses={**NOT_FOUND, 422: {"model": ErrorResponse}},
    summary="Size a position",
)
def position_size(
    request: PositionSizeRequest,
    use_case: CalculatePositionSizeUseCase = Depends(get_position_size_use_case),
) -> PositionSizeResponse:
    result = use_case.execute(
        CalculatePositionSizeCommand(
            symbol=request.symbol,
            method=request.method,
            portfolio_id=request.portfolio_id,
            portfolio_value=request.portfolio_value,
            price=request.price,
            volatility=request.volatility,
            win_rate=request.win_rate,
            avg_win=request.avg_win,
            avg_loss=request.avg_loss,
            max_risk_pct=request.max_risk_pct,
            params=SizingParams(
                dollar_amount=request.dollar_amount,
                percentage=request.percentage,
                win_rate=request.win_rate,
                avg_win=request.avg_win,
                avg_loss=request.avg_loss,
                base_percentage=request.base_percentage,
                volatility_target=request.volatility_target,
                risk_target=request.risk_target,
            ),
        )
    )
    return PositionSizeResponse(
        quantity=result.quantity,
        dollar_amount=result.dollar_amount,
        percentage_of_portfolio=result.percentage_of_portfolio,
        reasoning=result.reasoning,
    )


# ------------------------------------------------------------------
# Rules and automation
# ------------------------------------------------------------------

rule_router = APIRouter(prefix="/rules", tags=["rules"])
automation_router = APIRouter(prefix="/automation", tags=["automation"])


@rule_router.post(
    "",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**NOT_FOUND, 422: {"model": ErrorResponse}},
    summary="Create a trading rule",
)
def create_rule(
    request: CreateRuleRequest,
    use_case: CreateTradingRuleUseCase = Depends(get_create_rule_use_case),
) -> RuleResponse:
    return _rule(use_case.execute(_rule_command(request)))


@rule_router.post(
    "/validate",
    response_model=RuleValidationResponse,
    summary="Validate a rule without storing it",
)
def validate_rule(
    request: CreateRuleRequest,
    use_case: ValidateTradingRuleUseCase = Depends(get_validate_rule_use_case),
) -> RuleValidationResponse:
    result = use_case.execute(_rule_command(request))
    return RuleValidationResponse(
        is_valid=result.is_valid,
        errors=list(result.errors),
        warnings=list(result.warnings),
    )


@rule_router.get("", response_model=RuleListResponse, summary="List trading rules")
def list_rules(
    portfolio_id: Optional[UUID] = None,
    active_only: bool = False,
    use_case: ListTradingRulesUseCase = Depends(get_list_rules_use_case),
) -> RuleListResponse:
    rules = use_case.execute(portfolio_id=portfolio_id, active_only=active_only)
    return RuleListResponse(rules=[_rule(r) for r in rules])


@rule_router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
    summary="Delete a trading rule",
)
def delete_rule(
    rule_id: UUID,
    use_case: DeleteTradingRuleUseCase = Depends(get_delete_rule_use_case),
) -> Response:
    use_case.execute(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@automation_router.post(
    "/run",
    response_model=AutomationReportResponse,
    responses={**NOT_FOUND, 429: {"model": ErrorResponse}},
    summary="Run one automation pass",
    description=(
        "Evaluates the portfolio's active rules against current market "
        "context. With execute=false the trades are only proposed."
    ),
)
@limiter.limit(HEAVY_RATE_LIMIT)
def run_automation(
    request: Request,
    body: RunAutomationRequest,
    use_case: RunAutoTradingUseCase = Depends(get_run_auto_trading_use_case),
) -> AutomationReportResponse:
    report = use_case.execute(
        RunAutoTradingCommand(
            portfolio_id=body.portfolio_id,
            symbols=[s.upper() for s in body.symbols],
            execute=body.execute,
        )
    )
    return _report(report)


# ------------------------------------------------------------------
# Backtests
# ------------------------------------------------------------------

backtest_router = APIRouter(prefix="/backtests", tags=["backtests"])


@backtest_router.post(
    "",
    response_model=BacktestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Backtest a strategy over stored daily bars",
)
@limiter.limit(HEAVY_RATE_LIMIT)
def run_backtest(
    request: Request,
    body: RunBacktestRequest,
    use_case: RunBacktestUseCase = Depends(get_run_backtest_use_case),
) -> BacktestResponse:
    record = use_case.execute(
        RunBacktestCommand(
            strategy_name=body.strategy_name,
            components=[
                StrategyComponent(name=c.name, category=c.category, parameters=dict(c.parameters))
                for c in body.components
            ],
            symbols=[s.upper() for s in body.symbols],
            start=body.start,
            end=body.end,
            initial_capital=body.initial_capital,
            sizing_method=body.sizing_method,
            sizing_value=body.sizing_value,
            commission=body.commission,
            slippage=body.slippage,
        )
    )
    return _backtest(record)


@backtest_router.get("", response_model=BacktestListResponse, summary="List stored backtests")
def list_backtests(
    limit: int = Query(default=50, ge=1, le=500),
    use_case: ListBacktestsUseCase = Depends(get_list_backtests_use_case),
) -> BacktestListResponse:
    return BacktestListResponse(
        backtests=[
            BacktestSummaryItem(
                id=r.id,
                strategy_name=r.strategy_name,
                created_at=r.created_at,
                final_capital=float(r.report.get("final_capital", 0.0)),
                total_return_pct=float(r.report.get("total_return_pct", 0.0)),
            )
            for r in use_case.execute(limit)
        ]
    )


@backtest_router.get(
    "/{backtest_id}",
    response_model=BacktestResponse,
    responses=NOT_FOUND,
    summary="Get a stored backtest report",
)
def get_backtest(
    backtest_id: UUID,
    use_case: GetBacktestUseCase = Depends(get_backtest_use_case),
) -> BacktestResponse:
    return _backtest(use_case.execute(backtest_id))


routers = [
    portfolio_router,
    order_router,
    market_router,
    risk_router,
    rule_router,
    automation_router,
    backtest_router,
]
