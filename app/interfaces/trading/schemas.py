"""
Pydantic schemas for trading API request/response validation.

These schemas enforce input validation and define the API contract.
All fields use strict typing with constraints.
No business logic belongs here.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.domain.trading.entities import (
    LogicalOperator,
    OrderSide,
    OrderStatus,
    OrderType,
    PriceType,
    RiskProfile,
    RuleType,
    SizingMethod,
    TimeInForce,
)

SYMBOL_DESCRIPTION = "US stock ticker symbol"
SYMBOL_PATTERN = r"^[A-Z][A-Z0-9.]{0,9}$"


def symbol_field(**kwargs: Any) -> Any:
    return Field(..., pattern=SYMBOL_PATTERN, description=SYMBOL_DESCRIPTION, **kwargs)


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""

    status: str
    version: str


class ErrorResponse(BaseModel):
    """Standard error response returned by all error handlers."""

    error: str
    detail: str | None = None


# ------------------------------------------------------------------
# Portfolios and trades
# ------------------------------------------------------------------


class CreatePortfolioRequest(BaseModel):
    """Request schema for opening a paper portfolio.

    Attributes:
        name: Display name (1-100 chars).
        initial_cash: Starting cash, must be positive.
        risk_profile: conservative, moderate or aggressive.
        day_trading_enabled: Exempts the account from the PDT limit.
    """

    name: str = Field(..., min_length=1, max_length=100)
    initial_cash: Decimal = Field(default=Decimal("100000"), gt=0, max_digits=14, decimal_places=2)
    risk_profile: RiskProfile = RiskProfile.MODERATE
    day_trading_enabled: bool = False


class PositionItem(BaseModel):
    symbol: str
    quantity: int
    average_price: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: float
    opened_at: datetime


class PortfolioResponse(BaseModel):
    """Portfolio marked to the latest quotes."""

    id: UUID
    name: str
    initial_cash: Decimal
    current_cash: Decimal
    positions_value: Decimal
    total_value: Decimal
    total_pnl: Decimal
    total_return_pct: float
    realized_pnl: Decimal
    risk_profile: RiskProfile
    day_trading_enabled: bool
    day_trade_count: int
    assigned_strategy: Optional[str]
    is_active: bool
    created_at: datetime
    positions: list[PositionItem]


class PortfolioListResponse(BaseModel):
    portfolios: list[PortfolioResponse]


class PerformanceResponse(BaseModel):
    """Return, risk and trade statistics for a portfolio.

    Ratios that are undefined or infinite are reported as null.
    """

    portfolio_id: UUID
    total_value: Decimal
    total_pnl: Decimal
    total_return_pct: float
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    snapshot_count: int
    metrics: dict[str, Optional[float]]
    statistics: dict[str, Optional[float]]


class ExecuteTradeRequest(BaseModel):
    """Request schema for an immediate market trade."""

    symbol: str = symbol_field()
    side: OrderSide
    quantity: int = Field(..., gt=0, le=1_000_000)


class TradeItem(BaseModel):
    id: UUID
    portfolio_id: UUID
    symbol: str
    side: OrderSide
    quantity: int
    price: Decimal
    commission: Decimal
    realized_pnl: Optional[Decimal]
    executed_at: datetime
    order_id: Optional[UUID]


class TradeListResponse(BaseModel):
    trades: list[TradeItem]


class StrategyAssignmentResponse(BaseModel):
    """The strategy chosen for a portfolio and the limits it implies."""

    portfolio_id: UUID
    strategy_id: str
    name: str
    description: str
    style: str
    risk_level: RiskProfile
    max_positions: int
    stop_loss_pct: float
    take_profit_pct: float
    execution_frequency: str
    max_drawdown_pct: float
    max_position_pct: float
    daily_loss_limit: Decimal


# ------------------------------------------------------------------
# Orders
# ------------------------------------------------------------------


class PlaceOrderRequest(BaseModel):
    """Request schema for placing an order.

    Price fields required per type: limit needs ``limit_price``,
    stop_loss needs ``stop_price``, take_profit needs ``trigger_price``,
    stop_limit needs ``stop_price`` and ``limit_price``, trailing_stop
    needs exactly one of ``trail_amount`` / ``trail_percent``.
    """

    portfolio_id: UUID
    symbol: str = symbol_field()
    side: OrderSide
    order_type: OrderType
    quantity: int = Field(..., gt=0, le=1_000_000)
    limit_price: Optional[Decimal] = Field(default=None, gt=0)
    stop_price: Optional[Decimal] = Field(default=None, gt=0)
    trigger_price: Optional[Decimal] = Field(default=None, gt=0)
    trail_amount: Optional[Decimal] = Field(default=None, gt=0)
    trail_percent: Optional[Decimal] = Field(default=None, gt=0, lt=100)
    time_in_force: TimeInForce = TimeInForce.DAY
    expires_at: Optional[datetime] = None


class PlaceBracketOrderRequest(BaseModel):
    """Entry order with take-profit and stop-loss exits (one cancels the other)."""

    portfolio_id: UUID
    symbol: str = symbol_field()
    side: OrderSide
    quantity: int = Field(..., gt=0, le=1_000_000)
    take_profit_price: Decimal = Field(..., gt=0)
    stop_loss_price: Decimal = Field(..., gt=0)
    entry_type: OrderType = OrderType.MARKET
    limit_price: Optional[Decimal] = Field(default=None, gt=0)
    time_in_force: TimeInForce = TimeInForce.GTC


class OrderItem(BaseModel):
    id: UUID
    portfolio_id: UUID
    symbol: str
    order_type: OrderType
    side: OrderSide
    quantity: int
    filled_quantity: int
    remaining_quantity: int
    status: OrderStatus
    time_in_force: TimeInForce
    limit_price: Optional[Decimal]
    stop_price: Optional[Decimal]
    trigger_price: Optional[Decimal]
    trail_amount: Optional[Decimal]
    trail_percent: Optional[Decimal]
    average_fill_price: Optional[Decimal]
    commission: Decimal
    oco_group_id: Optional[str]
    parent_order_id: Optional[UUID]
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    executed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]


class BracketOrderResponse(BaseModel):
    entry: OrderItem
    legs: list[OrderItem]


class OrderListResponse(BaseModel):
    orders: list[OrderItem]


# ------------------------------------------------------------------
# Market data
# ------------------------------------------------------------------


class MarketTickRequest(BaseModel):
    """A new price for a symbol. The symbol is taken from the path."""

    price: Decimal = Field(..., gt=0)
    volume: int = Field(default=0, ge=0)
    previous_close: Optional[Decimal] = Field(default=None, gt=0)


class MarketTickResponse(BaseModel):
    symbol: str
    price: Decimal
    portfolios_marked: int
    orders_evaluated: int
    trades: list[TradeItem]


class QuoteResponse(BaseModel):
    symbol: str
    price: Decimal
    previous_close: Decimal
    change: Decimal
    change_percent: Decimal
    volume: int
    updated_at: datetime


class PriceBarItem(BaseModel):
    symbol: str = symbol_field()
    date: date
    open: Decimal = Field(..., gt=0)
    high: Decimal = Field(..., gt=0)
    low: Decimal = Field(..., gt=0)
    close: Decimal = Field(..., gt=0)
    volume: int = Field(..., ge=0)


class ImportBarsRequest(BaseModel):
    bars: list[PriceBarItem] = Field(..., min_length=1, max_length=20_000)


class ImportBarsResponse(BaseModel):
    imported: int


class IndicatorsResponse(BaseModel):
    symbol: str
    bar_count: int
    as_of: Optional[date]
    volatility: Optional[float]
    indicators: dict[str, Any]


class ScanCriterionItem(BaseModel):
    """One filter, e.g. ``{"field": "rsi", "operator": "lt", "value": 30}``."""

    field: str = Field(..., min_length=1, max_length=50)
    operator: Literal["gt", "lt", "gte", "lte", "eq", "above", "below"]
    value: float


class ScanRequest(BaseModel):
    criteria: list[ScanCriterionItem] = Field(..., min_length=1, max_length=20)
    symbols: Optional[list[str]] = Field(default=None, max_length=500)


class ScanMatchItem(BaseModel):
    symbol: str
    price: Optional[Decimal]
    indicators: dict[str, Any]


class ScanResponse(BaseModel):
    matches: list[ScanMatchItem]


class MarketStatusResponse(BaseModel):
    is_open: bool
    session: str
    next_open: Optional[datetime]
    next_close: Optional[datetime]
    reason: str


# ------------------------------------------------------------------
# Risk
# ------------------------------------------------------------------


class ValidateRiskRequest(BaseModel):
    portfolio_id: UUID
    symbol: str = symbol_field()
    side: OrderSide
    quantity: int = Field(..., gt=0, le=1_000_000)
    price: Optional[Decimal] = Field(default=None, gt=0)


class RiskCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str]
    adjusted_quantity: Optional[int]
    warnings: list[str]


class PositionSizeRequest(BaseModel):
    """Request schema for position sizing.

    Either ``portfolio_id`` or ``portfolio_value`` must be given. The
    price defaults to the latest quote and volatility to the symbol's
    20-day historical volatility.
    """

    symbol: str = symbol_field()
    method: SizingMethod
    portfolio_id: Optional[UUID] = None
    portfolio_value: Optional[Decimal] = Field(default=None, gt=0)
    price: Optional[Decimal] = Field(default=None, gt=0)
    volatility: Optional[float] = Field(default=None, gt=0)
    win_rate: Optional[float] = Field(default=None, ge=0, le=1)
    avg_win: Optional[float] = Field(default=None, gt=0)
    avg_loss: Optional[float] = Field(default=None, gt=0)
    max_risk_pct: Optional[float] = Field(default=None, gt=0, le=100)
    dollar_amount: Optional[float] = Field(default=None, gt=0)
    percentage: Optional[float] = Field(default=None, gt=0, le=100)
    base_percentage: Optional[float] = Field(default=None, gt=0, le=100)
    volatility_target: Optional[float] = Field(default=None, gt=0)
    risk_target: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _require_portfolio(self) -> "PositionSizeRequest":
        if self.portfolio_id is None and self.portfolio_value is None:
            raise ValueError("portfolio_id or portfolio_value is required")
        return self


class PositionSizeResponse(BaseModel):
    quantity: int
    dollar_amount: Decimal
    percentage_of_portfolio: float
    reasoning: str


# ------------------------------------------------------------------
# Automation rules
# ------------------------------------------------------------------


class RuleConditionItem(BaseModel):
    """A rule condition. Blank parts are reported by rule validation."""

    field: str = Field(default="", max_length=100)
    operator: str = Field(default="", max_length=30)
    value: Any = None
    logical: LogicalOperator = LogicalOperator.AND


class RuleActionItem(BaseModel):
    side: Optional[OrderSide] = None
    sizing_method: Optional[SizingMethod] = None
    size_value: Optional[float] = Field(default=None, ge=0)
    price_type: PriceType = PriceType.MARKET
    price_offset: Decimal = Decimal("0")


class CreateRuleRequest(BaseModel):
    portfolio_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    rule_type: RuleType = RuleType.ENTRY
    conditions: list[RuleConditionItem] = Field(default_factory=list, max_length=50)
    actions: list[RuleActionItem] = Field(default_factory=list, max_length=20)
    priority: Optional[int] = Field(default=None, ge=0, le=1000)
    is_active: bool = True


class RuleResponse(BaseModel):
    id: UUID
    portfolio_id: UUID
    name: str
    rule_type: RuleType
    priority: Optional[int]
    is_active: bool
    conditions: list[RuleConditionItem]
    actions: list[RuleActionItem]
    created_at: datetime


class RuleListResponse(BaseModel):
    rules: list[RuleResponse]


class RuleValidationResponse(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]


class RunAutomationRequest(BaseModel):
    """One automation pass. ``execute=false`` only proposes trades."""

    portfolio_id: UUID
    symbols: list[str] = Field(default_factory=list, max_length=500)
    execute: bool = False


class AutoTradeDecisionItem(BaseModel):
    rule_name: str
    symbol: str
    side: OrderSide
    quantity: int
    price: Decimal
    status: str
    reason: Optional[str]
    order_id: Optional[UUID]


class AutomationReportResponse(BaseModel):
    portfolio_id: UUID
    halted: bool
    halt_reason: Optional[str]
    rules_evaluated: int
    rules_triggered: int
    proposed: int
    executed: int
    rejected: int
    decisions: list[AutoTradeDecisionItem]


# ------------------------------------------------------------------
# Backtests
# ------------------------------------------------------------------


class StrategyComponentItem(BaseModel):
    """A strategy building block such as ``{"name": "RSI Oversold", "category": "entry"}``."""

    name: str = Field(..., min_length=1, max_length=50)
    category: Literal["entry", "exit"] = "entry"
    parameters: dict[str, Any] = Field(default_factory=dict)


class RunBacktestRequest(BaseModel):
    strategy_name: str = Field(..., min_length=1, max_length=100)
    components: list[StrategyComponentItem] = Field(..., min_length=1, max_length=20)
    symbols: list[str] = Field(..., min_length=1, max_length=50)
    start: date
    end: date
    initial_capital: float = Field(default=100000.0, gt=0)
    sizing_method: SizingMethod = SizingMethod.FIXED
    sizing_value: Optional[float] = Field(default=None, gt=0)
    commission: float = Field(default=0.001, ge=0, le=0.1)
    slippage: float = Field(default=0.0005, ge=0, le=0.1)


class BacktestResponse(BaseModel):
    id: UUID
    strategy_name: str
    created_at: datetime
    report: dict[str, Any]


class BacktestSummaryItem(BaseModel):
    id: UUID
    strategy_name: str
    created_at: datetime
    final_capital: float
    total_return_pct: float


class BacktestListResponse(BaseModel):
    backtests: list[BacktestSummaryItem]
