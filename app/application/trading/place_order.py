"""
Use cases: Place single and bracket orders.

Input: PlaceOrderCommand / PlaceBracketOrderCommand
Output: Order (bracket: entry order plus its two exit legs)
Side effects: Writes orders; may fill immediately against the latest quote.
Failure cases: PortfolioNotFoundError, SymbolNotFoundError, InvalidOrderError,
    MarketClosedError, RiskLimitExceededError, InsufficientFundsError,
    InsufficientPositionError.
"""

import logging
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

from app.application.trading.dtos import PlaceBracketOrderCommand, PlaceOrderCommand
from app.application.trading.manage_portfolios import load_portfolio
from app.application.trading.order_processor import OrderProcessor
from app.application.trading.risk_policy import RiskPolicy
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import (
    CENT,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    Portfolio,
    StockQuote,
    TimeInForce,
    utc_now,
)
from app.domain.trading.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    RiskLimitExceededError,
    SymbolNotFoundError,
)
from app.domain.trading.execution import OrderExecutionService
from app.domain.trading.market_hours import MarketHoursService
from app.domain.trading.ports import (
    OrderRepository,
    PortfolioRepository,
    StockQuoteRepository,
)

logger = logging.getLogger(__name__)


class PlaceOrderUseCase:
    """Validates, stores and immediately evaluates an order."""

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        order_repo: OrderRepository,
        quote_repo: StockQuoteRepository,
        executor: TradeExecutor,
        processor: OrderProcessor,
        execution: OrderExecutionService,
        risk_policy: RiskPolicy,
        market_hours: MarketHoursService,
        enforce_market_hours: bool = False,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._orders = order_repo
        self._quotes = quote_repo
        self._executor = executor
        self._processor = processor
        self._execution = execution
        self._risk_policy = risk_policy
        self._market_hours = market_hours
        self._enforce_market_hours = enforce_market_hours
        self._clock = clock

    def execute(self, command: PlaceOrderCommand) -> Order:
        logger.info(
            "Placing %s %s order for %d %s (portfolio %s)",
            command.order_type.value,
            command.side.value,
            command.quantity,
            command.symbol,
            command.portfolio_id,
        )
        now = self._clock()
        order = Order(
            portfolio_id=command.portfolio_id,
            symbol=command.symbol,
            order_type=command.order_type,
            side=command.side,
            quantity=command.quantity,
            limit_price=command.limit_price,
            stop_price=command.stop_price,
            trigger_price=command.trigger_price,
            trail_amount=command.trail_amount,
            trail_percent=command.trail_percent,
            time_in_force=command.time_in_force,
            expires_at=command.expires_at,
            created_at=now,
            updated_at=now,
        )
        return self.submit(order)

    def submit(self, order: Order, check_position: bool = True) -> Order:
        """Validate and store ``order``, then evaluate it once if a quote exists."""
        now = order.created_at
        self._execution.validate_order(order)
        if order.expires_at is not None and order.time_in_force != TimeInForce.GTC:
            raise InvalidOrderError("expires_at is only supported for GTC orders")

        portfolio = self._executor.mark_to_market(
            load_portfolio(self._portfolios, order.portfolio_id)
        )
        quote = self._quotes.get(order.symbol)
        if order.order_type == OrderType.MARKET:
            if quote is None:
                raise SymbolNotFoundError(order.symbol)
            if self._enforce_market_hours:
                self._market_hours.ensure_market_open(now)

        if order.side == OrderSide.BUY:
            self._check_buy(portfolio, order, quote)
        elif check_position:
            held = portfolio.positions.get(order.symbol)
            held_qty = held.quantity if held else 0
            if order.quantity > held_qty:
                raise InsufficientPositionError(order.symbol, order.quantity, held_qty)

        self._orders.save(order)
        if quote is not None:
            self._processor.process(order, quote, now)
        return order

    def _check_buy(
        self, portfolio: Portfolio, order: Order, quote: Optional[StockQuote]
    ) -> None:
        price = self._reference_price(order, quote)
        if price is None:
            return

        cost = price * order.quantity + self._execution.commission(order.quantity, price)
        if cost > portfolio.current_cash:
            raise InsufficientFundsError(
                required=str(cost.quantize(CENT)),
                available=str(portfolio.current_cash.quantize(CENT)),
            )

        risk = self._risk_policy.for_portfolio(portfolio)
        check = risk.validate_trade(
            portfolio,
            order.side,
            order.symbol,
            order.quantity,
            price,
            daily_realized_pnl=self._executor.daily_realized_pnl(
                portfolio.id, order.created_at
            ),
        )
        if not check.allowed:
            raise RiskLimitExceededError(check.reason, check.adjusted_quantity)

    def _reference_price(
        self, order: Order, quote: Optional[StockQuote]
    ) -> Optional[Decimal]:
        t = order.order_type
        if t in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            return order.limit_price
        if t == OrderType.TAKE_PROFIT:
            return order.trigger_price
        if t == OrderType.STOP_LOSS:
            return order.stop_price
        if quote is None:
            return None
        return self.market_price(quote.price, order.side)

    def market_price(self, quote_price: Decimal, side: OrderSide) -> Decimal:
        """Price a market order is checked against and filled at."""
        return self._execution.apply_slippage(quote_price, side)


class PlaceBracketOrderUseCase:
    """Entry order with one-cancels-other take-profit and stop-loss exits.

    The exit legs wait until the entry order is fully executed and are
    cancelled if the entry is cancelled or expires.
    """

    def __init__(
        self,
        place_order: PlaceOrderUseCase,
        order_repo: OrderRepository,
        processor: OrderProcessor,
        clock: Callable = utc_now,
    ) -> None:
        self._place_order = place_order
        self._orders = order_repo
        self._processor = processor
        self._clock = clock

    def execute(self, command: PlaceBracketOrderCommand) -> tuple[Order, list[Order]]:
        if command.entry_type not in (OrderType.MARKET, OrderType.LIMIT):
            raise InvalidOrderError("Bracket entry must be a market or limit order")
        self._validate_prices(command)

        now = self._clock()
        entry = self._place_order.execute(
            PlaceOrderCommand(
                portfolio_id=command.portfolio_id,
                symbol=command.symbol,
                side=command.side,
                order_type=command.entry_type,
                quantity=command.quantity,
                limit_price=command.limit_price,
                time_in_force=command.time_in_force,
            )
        )

        exit_side = OrderSide.SELL if command.side == OrderSide.BUY else OrderSide.BUY
        group = str(uuid4())
        legs = [
            Order(
                portfolio_id=command.portfolio_id,
                symbol=command.symbol,
                order_type=OrderType.TAKE_PROFIT,
                side=exit_side,
                quantity=command.quantity,
                trigger_price=command.take_profit_price,
                time_in_force=TimeInForce.GTC,
                oco_group_id=group,
                parent_order_id=entry.id,
                created_at=now,
                updated_at=now,
            ),
            Order(
                portfolio_id=command.portfolio_id,
                symbol=command.symbol,
                order_type=OrderType.STOP_LOSS,
                side=exit_side,
                quantity=command.quantity,
                stop_price=command.stop_loss_price,
                time_in_force=TimeInForce.GTC,
                oco_group_id=group,
                parent_order_id=entry.id,
                created_at=now,
                updated_at=now,
            ),
        ]
        for leg in legs:
            self._orders.save(leg)

        if entry.status in (OrderStatus.CANCELLED, OrderStatus.EXPIRED):
            self._processor.cancel_children(entry, now)
            legs = self._orders.list_children(entry.id)

        logger.info(
            "Placed bracket order %s (take profit %s, stop loss %s)",
            entry.id,
            command.take_profit_price,
            command.stop_loss_price,
        )
        return entry, legs

    @staticmethod
    def _validate_prices(command: PlaceBracketOrderCommand) -> None:
        if command.quantity <= 0:
            raise InvalidOrderError("quantity must be positive")
        if command.entry_type == OrderType.LIMIT and command.limit_price is None:
            raise InvalidOrderError("Limit orders require a limit price")
        tp, sl = command.take_profit_price, command.stop_loss_price
        if tp <= 0 or sl <= 0:
            raise InvalidOrderError("bracket prices must be positive")
        if command.side == OrderSide.BUY and not sl < tp:
            raise InvalidOrderError("stop loss must be below take profit for a long bracket")
        if command.side == OrderSide.SELL and not tp < sl:
            raise InvalidOrderError("take profit must be below stop loss for a short bracket")
        entry = command.limit_price
        if entry is not None:
            low, high = (sl, tp) if command.side == OrderSide.BUY else (tp, sl)
            if not low < entry < high:
                raise InvalidOrderError("entry price must lie between stop loss and take profit")
