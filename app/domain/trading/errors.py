"""
Domain-specific errors for the trading bounded context.

All errors raised from the domain layer must be defined here.
These are mapped to HTTP responses at the interface layer.
No framework imports allowed.
"""


class TradingDomainError(Exception):
    """Base error for all trading domain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class SymbolNotFoundError(TradingDomainError):
    """Raised when no quote is known for a stock symbol."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Symbol not found: {symbol}")
        self.symbol = symbol


class PortfolioNotFoundError(TradingDomainError):
    """Raised when a portfolio cannot be found."""

    def __init__(self, portfolio_id: str) -> None:
        super().__init__(f"Portfolio not found: {portfolio_id}")
        self.portfolio_id = portfolio_id


class OrderNotFoundError(TradingDomainError):
    """Raised when an order cannot be found."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class RuleNotFoundError(TradingDomainError):
    """Raised when a trading rule cannot be found."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Trading rule not found: {rule_id}")
        self.rule_id = rule_id


class BacktestNotFoundError(TradingDomainError):
    """Raised when a stored backtest result cannot be found."""

    def __init__(self, backtest_id: str) -> None:
        super().__init__(f"Backtest result not found: {backtest_id}")
        self.backtest_id = backtest_id


class InsufficientFundsError(TradingDomainError):
    """Raised when the portfolio lacks cash for a purchase."""

    def __init__(self, required: str, available: str) -> None:
        super().__init__(
            f"Insufficient funds: required {required}, available {available}"
        )
        self.required = required
        self.available = available


class InsufficientPositionError(TradingDomainError):
    """Raised when selling more shares than the portfolio holds."""

    def __init__(self, symbol: str, requested: int, held: int) -> None:
        super().__init__(
            f"Insufficient position in {symbol}: requested {requested}, held {held}"
        )
        self.symbol = symbol
        self.requested = requested
        self.held = held


class InvalidOrderError(TradingDomainError):
    """Raised when an order or trade request is malformed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid order: {reason}")
        self.reason = reason


class OrderNotCancellableError(TradingDomainError):
    """Raised when cancelling an order that is no longer open."""

    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(f"Order {order_id} cannot be cancelled (status: {status})")
        self.order_id = order_id
        self.status = status


class RiskLimitExceededError(TradingDomainError):
    """Raised when a trade is rejected by the risk checks."""

    def __init__(self, reason: str, adjusted_quantity: int | None = None) -> None:
        super().__init__(f"Risk limit exceeded: {reason}")
        self.reason = reason
        self.adjusted_quantity = adjusted_quantity


class PatternDayTradeError(TradingDomainError):
    """Raised when a sale would breach the pattern-day-trader limit."""

    def __init__(self, portfolio_id: str, day_trades: int) -> None:
        super().__init__(
            f"Pattern day trader limit reached for portfolio {portfolio_id}: "
            f"{day_trades} day trades in the current window"
        )
        self.portfolio_id = portfolio_id
        self.day_trades = day_trades


class MarketClosedError(TradingDomainError):
    """Raised when trading is attempted outside market hours."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidRuleError(TradingDomainError):
    """Raised when a trading rule fails validation."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid trading rule: " + "; ".join(errors))
        self.errors = errors


class InvalidPositionSizeError(TradingDomainError):
    """Raised when position sizing inputs cannot produce a size."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Cannot size position: {reason}")
        self.reason = reason


class NoMarketDataError(TradingDomainError):
    """Raised when a computation needs price history that does not exist."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"No market data: {reason}")
        self.reason = reason
