"""
Domain entities for the trading bounded context.

Entities represent core business objects with identity and lifecycle.
They contain no framework imports and no IO operations.

Money is carried as Decimal. Timestamps are naive UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

ZERO = Decimal("0")
CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderSide(str, Enum):
    """Direction of an order or trade."""

    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Supported order types."""

    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    STOP_LIMIT = "stop_limit"
    TRAILING_STOP = "trailing_stop"


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    TRIGGERED = "triggered"
    PARTIALLY_FILLED = "partially_filled"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


OPEN_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.TRIGGERED,
    OrderStatus.PARTIALLY_FILLED,
)


class TimeInForce(str, Enum):
    """How long an order stays working."""

    DAY = "day"
    GTC = "gtc"  # Good Till Cancelled
    IOC = "ioc"  # Immediate or Cancel
    FOK = "fok"  # Fill or Kill


class RiskProfile(str, Enum):
    """Investor risk profile."""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class RuleType(str, Enum):
    """Category of an automation rule."""

    ENTRY = "entry"
    EXIT = "exit"
    RISK = "risk"


class ConditionOperator(str, Enum):
    """Comparison operators for rule conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"


class LogicalOperator(str, Enum):
    """How a condition combines with the next one."""

    AND = "AND"
    OR = "OR"


class SizingMethod(str, Enum):
    """Position sizing methods."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    FULL_POSITION = "full_position"
    KELLY = "kelly"
    VOLATILITY_ADJUSTED = "volatility_adjusted"
    RISK_PARITY = "risk_parity"


class PriceType(str, Enum):
    """Pricing for a rule-generated trade."""

    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"


@dataclass(frozen=True)
class StockQuote:
    """Latest known quote for a symbol."""

    symbol: str
    price: Decimal
    previous_close: Decimal = ZERO
    volume: int = 0
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def change(self) -> Decimal:
        """Absolute change against the previous close."""
        if self.previous_close == 0:
            return ZERO
        return self.price - self.previous_close

    @property
    def change_percent(self) -> Decimal:
        """Percent change against the previous close."""
        if self.previous_close == 0:
            return ZERO
        return (self.change / self.previous_close * 100).quantize(CENT)


@dataclass(frozen=True)
class PriceBar:
    """A single day's OHLCV record."""

    symbol: str
    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int


@dataclass
class Position:
    """A holding within a portfolio."""

    symbol: str
    quantity: int
    average_price: Decimal
    current_price: Decimal
    opened_at: datetime = field(default_factory=utc_now)

    @property
    def cost_basis(self) -> Decimal:
        return self.average_price * self.quantity

    @property
    def market_value(self) -> Decimal:
        return self.current_price * self.quantity

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.market_value - self.cost_basis

    @property
    def unrealized_pnl_pct(self) -> float:
        if self.cost_basis == 0:
            return 0.0
        return float(self.unrealized_pnl / self.cost_basis * 100)


@dataclass
class Portfolio:
    """A virtual portfolio tracking cash, positions and day-trade usage."""

    name: str
    id: UUID = field(default_factory=uuid4)
    initial_cash: Decimal = Decimal("100000")
    current_cash: Decimal = Decimal("100000")
    risk_profile: RiskProfile = RiskProfile.MODERATE
    day_trading_enabled: bool = False
    day_trade_count: int = 0
    day_trade_window_start: Optional[date] = None
    realized_pnl: Decimal = ZERO
    assigned_strategy: Optional[str] = None
    is_active: bool = True
    positions: dict[str, Position] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def positions_value(self) -> Decimal:
        return sum((p.market_value for p in self.positions.values()), ZERO)

    @property
    def total_value(self) -> Decimal:
        return self.current_cash + self.positions_value

    @property
    def total_pnl(self) -> Decimal:
        return self.total_value - self.initial_cash

    @property
    def total_return_pct(self) -> float:
        if self.initial_cash == 0:
            return 0.0
        return float(self.total_pnl / self.initial_cash * 100)

    def mark_to_market(self, prices: dict[str, Decimal]) -> None:
        """Refresh position prices from a symbol -> price mapping."""
        for symbol, position in self.positions.items():
            if symbol in prices:
                position.current_price = prices[symbol]


@dataclass(frozen=True)
class Trade:
    """An executed fill against a portfolio."""

    portfolio_id: UUID
    symbol: str
    side: OrderSide
    quantity: int
    price: Decimal
    commission: Decimal = ZERO
    realized_pnl: Optional[Decimal] = None
    executed_at: datetime = field(default_factory=utc_now)
    order_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid4)

    @property
    def gross_amount(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class Order:
    """A working or completed order."""

    portfolio_id: UUID
    symbol: str
    order_type: OrderType
    side: OrderSide
    quantity: int
    id: UUID = field(default_factory=uuid4)
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    trigger_price: Optional[Decimal] = None
    trail_amount: Optional[Decimal] = None
    trail_percent: Optional[Decimal] = None
    extreme_price: Optional[Decimal] = None
    time_in_force: TimeInForce = TimeInForce.DAY
    status: OrderStatus = OrderStatus.PENDING
    filled_quantity: int = 0
    average_fill_price: Optional[Decimal] = None
    commission: Decimal = ZERO
    oco_group_id: Optional[str] = None
    parent_order_id: Optional[UUID] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.filled_quantity

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ORDER_STATUSES

    def record_fill(
        self, quantity: int, price: Decimal, commission: Decimal, at: datetime
    ) -> None:
        """Apply a (possibly partial) fill and update status."""
        previous_value = (self.average_fill_price or ZERO) * self.filled_quantity
        self.filled_quantity += quantity
        self.average_fill_price = (
            (previous_value + price * quantity) / self.filled_quantity
        ).quantize(Decimal("0.0001"))
        self.commission += commission
        self.updated_at = at
        if self.filled_quantity >= self.quantity:
            self.status = OrderStatus.EXECUTED
            self.executed_at = at
        else:
            self.status = OrderStatus.PARTIALLY_FILLED

    def close(self, status: OrderStatus, reason: str, at: datetime) -> None:
        """Move an open order to a terminal, non-executed status."""
        self.status = status
        self.cancellation_reason = reason
        self.cancelled_at = at
        self.updated_at = at


@dataclass(frozen=True)
class RuleCondition:
    """One comparison inside a trading rule."""

    field: str
    operator: str
    value: Any
    logical: LogicalOperator = LogicalOperator.AND


@dataclass(frozen=True)
class RuleAction:
    """What to do when a rule fires."""

    side: Optional[OrderSide]
    sizing_method: Optional[SizingMethod]
    size_value: Optional[float] = None
    price_type: PriceType = PriceType.MARKET
    price_offset: Decimal = ZERO


@dataclass
class TradingRule:
    """An automation rule owned by a portfolio."""

    portfolio_id: UUID
    name: str
    rule_type: RuleType = RuleType.ENTRY
    priority: Optional[int] = None
    is_active: bool = True
    conditions: list[RuleCondition] = field(default_factory=list)
    actions: list[RuleAction] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def effective_priority(self) -> int:
        return self.priority if self.priority is not None else 0


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Portfolio valuation at a point in time."""

    portfolio_id: UUID
    taken_at: datetime
    total_value: Decimal
    cash: Decimal
