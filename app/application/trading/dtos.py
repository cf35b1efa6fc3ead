"""
Data Transfer Objects for the trading application layer.

DTOs carry data between the interface and application layers.
They are plain dataclasses with no behavior.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from app.domain.trading.entities import (
    OrderSide,
    OrderType,
    PriceBar,
    RiskProfile,
    RuleAction,
    RuleCondition,
    RuleType,
    SizingMethod,
    TimeInForce,
    Trade,
)
from app.domain.trading.indicators import TechnicalIndicators
from app.domain.trading.performance import ReturnMetrics, TradeStatistics
from app.domain.trading.position_sizing import SizingParams
from app.domain.trading.backtesting import StrategyComponent


# ── Portfolios ───────────────────────────────────────────────


@dataclass(frozen=True)
class CreatePortfolioCommand:
    """Input DTO for opening a paper portfolio.

    Attributes:
        name: Display name.
        initial_cash: Starting cash balance, must be positive.
        risk_profile: Investor risk profile.
        day_trading_enabled: Exempts the account from the PDT limit.
    """

    name: str
    initial_cash: Decimal
    risk_profile: RiskProfile = RiskProfile.MODERATE
    day_trading_enabled: bool = False


@dataclass(frozen=True)
class PortfolioPerformanceResult:
    portfolio_id: UUID
    total_value: Decimal
    total_pnl: Decimal
    total_return_pct: float
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    snapshot_count: int
    metrics: ReturnMetrics
    statistics: TradeStatistics


# ── Trades and orders ────────────────────────────────────────


@dataclass(frozen=True)
class ExecuteTradeCommand:
    """Input DTO for an immediate market trade."""

    portfolio_id: UUID
    symbol: str
    side: OrderSide
    quantity: int


@dataclass(frozen=True)
class PlaceOrderCommand:
    """Input DTO for placing an order of any supported type."""

    portfolio_id: UUID
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: int
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    trigger_price: Optional[Decimal] = None
    trail_amount: Optional[Decimal] = None
    trail_percent: Optional[Decimal] = None
    time_in_force: TimeInForce = TimeInForce.DAY
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class PlaceBracketOrderCommand:
    """Entry order plus a take-profit / stop-loss pair that activates on fill.

    Attributes:
        entry_type: MARKET or LIMIT.
        take_profit_price: Exit target for the OCO take-profit leg.
        stop_loss_price: Exit stop for the OCO stop-loss leg.
    """

    portfolio_id: UUID
    symbol: str
    side: OrderSide
    quantity: int
    take_profit_price: Decimal
    stop_loss_price: Decimal
    entry_type: OrderType = OrderType.MARKET
    limit_price: Optional[Decimal] = None
    time_in_force: TimeInForce = TimeInForce.GTC


@dataclass(frozen=True)
class MarketTickCommand:
    """A new price for a symbol pushed by a data feed or user."""

    symbol: str
    price: Decimal
    volume: int = 0
    previous_close: Optional[Decimal] = None


@dataclass(frozen=True)
class MarketTickResult:
    symbol: str
    price: Decimal
    portfolios_marked: int
    orders_evaluated: int
    trades: list[Trade] = field(default_factory=list)


# ── Market data ──────────────────────────────────────────────


@dataclass(frozen=True)
class ImportPriceHistoryCommand:
    bars: list[PriceBar]


@dataclass(frozen=True)
class IndicatorsResult:
    symbol: str
    bar_count: int
    as_of: Optional[date]
    volatility: Optional[float]
    indicators: TechnicalIndicators


@dataclass(frozen=True)
class ScanCriterion:
    """One scanner filter such as ``rsi lt 30``."""

    field: str
    operator: str
    value: float


@dataclass(frozen=True)
class ScanMarketQuery:
    criteria: list[ScanCriterion]
    symbols: Optional[list[str]] = None


@dataclass(frozen=True)
class ScanMatch:
    symbol: str
    price: Optional[Decimal]
    indicators: TechnicalIndicators


# ── Risk ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ValidateTradeRiskCommand:
    portfolio_id: UUID
    symbol: str
    side: OrderSide
    quantity: int
    price: Optional[Decimal] = None


@dataclass(frozen=True)
class CalculatePositionSizeCommand:
    """Input DTO for sizing a position.

    When ``portfolio_id`` is given its marked total value is used;
    otherwise ``portfolio_value`` must be supplied.
    """

    symbol: str
    method: SizingMethod
    portfolio_id: Optional[UUID] = None
    portfolio_value: Optional[Decimal] = None
    price: Optional[Decimal] = None
    volatility: Optional[float] = None
    win_rate: Optional[float] = None
    avg_win: Optional[float] = None
    avg_loss: Optional[float] = None
    max_risk_pct: Optional[float] = None
    params: SizingParams = field(default_factory=SizingParams)


# ── Automation ───────────────────────────────────────────────


@dataclass(frozen=True)
class CreateTradingRuleCommand:
    portfolio_id: UUID
    name: str
    rule_type: RuleType
    conditions: list[RuleCondition]
    actions: list[RuleAction]
    priority: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class RunAutoTradingCommand:
    """Input DTO for one automation pass.

    Attributes:
        portfolio_id: Portfolio whose active rules are evaluated.
        symbols: Symbols to evaluate; all quoted symbols when empty.
        execute: Place market orders when True, otherwise only propose.
    """

    portfolio_id: UUID
    symbols: list[str] = field(default_factory=list)
    execute: bool = False


@dataclass(frozen=True)
class AutoTradeDecision:
    rule_name: str
    symbol: str
    side: OrderSide
    quantity: int
    price: Decimal
    status: str
    reason: Optional[str] = None
    order_id: Optional[UUID] = None


@dataclass(frozen=True)
class AutoTradingReport:
    portfolio_id: UUID
    halted: bool
    rules_evaluated: int
    rules_triggered: int
    decisions: list[AutoTradeDecision] = field(default_factory=list)
    halt_reason: Optional[str] = None

    @property
    def proposed(self) -> int:
        return len(self.decisions)

    @property
    def executed(self) -> int:
        return sum(1 for d in self.decisions if d.status == "executed")

    @property
    def rejected(self) -> int:
        return sum(1 for d in self.decisions if d.status == "rejected")


# ── Backtests ────────────────────────────────────────────────


@dataclass(frozen=True)
class RunBacktestCommand:
    strategy_name: str
    components: list[StrategyComponent]
    symbols: list[str]
    start: date
    end: date
    initial_capital: float = 100000.0
    sizing_method: SizingMethod = SizingMethod.FIXED
    sizing_value: Optional[float] = None
    commission: float = 0.001
    slippage: float = 0.0005


@dataclass(frozen=True)
class BacktestRecord:
    id: UUID
    strategy_name: str
    created_at: datetime
    report: dict[str, Any]
