"""
Application service: evaluate a working order against a quote.

Handles trailing-stop ratcheting, stop-limit triggering, partial fills
capped by volume participation, time-in-force rules, bracket children
that wait for their parent, and one-cancels-other groups.
"""

import logging
from datetime import datetime
from typing import Optional

from app.application.trading.trade_executor import FILL_LOCK, TradeExecutor
from app.domain.trading.entities import (
    Order,
    OrderStatus,
    StockQuote,
    TimeInForce,
    Trade,
)
from app.domain.trading.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    PatternDayTradeError,
)
from app.domain.trading.execution import OrderExecutionService
from app.domain.trading.ports import OrderRepository, PortfolioRepository

logger = logging.getLogger(__name__)

REJECTABLE_FILL_ERRORS = (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    PatternDayTradeError,
)


class OrderProcessor:
    """Evaluates one open order at a time and applies any resulting fill."""

    def __init__(
        self,
        order_repo: OrderRepository,
        portfolio_repo: PortfolioRepository,
        executor: TradeExecutor,
        execution: OrderExecutionService,
        max_volume_participation: float = 0.10,
    ) -> None:
        self._orders = order_repo
        self._portfolios = portfolio_repo
        self._executor = executor
        self._execution = execution
        self._participation = max_volume_participation

    def process(self, order: Order, quote: StockQuote, at: datetime) -> Optional[Trade]:
        """Evaluate ``order`` at ``quote`` and persist the outcome.

        Returns:
            The Trade when the order (partially) filled, else None.
        """
        if not order.is_open:
            return None

        # scheduler threads and requests may hold copies of the same order
        with FILL_LOCK:
            if self._is_stale(order):
                logger.info("Order %s changed since it was loaded, skipping", order.id)
                return None
            return self._process(order, quote, at)

    def _is_stale(self, order: Order) -> bool:
        stored = self._orders.get(order.id)
        return stored is None or (stored.status, stored.filled_quantity) != (
            order.status,
            order.filled_quantity,
        )

    def _process(self, order: Order, quote: StockQuote, at: datetime) -> Optional[Trade]:
        if order.parent_order_id is not None and not self._parent_ready(order, at):
            return None

        moved = self._execution.update_trailing_stop(order, quote.price)
        decision = self._execution.evaluate(order, quote.price)
        if decision.triggered:
            order.status = OrderStatus.TRIGGERED
            order.trigger_price = quote.price
            order.updated_at = at
            logger.info("Stop-limit order %s triggered at %s", order.id, quote.price)

        if not decision.fill:
            if order.time_in_force in (TimeInForce.IOC, TimeInForce.FOK):
                order.close(OrderStatus.CANCELLED, "Order could not be filled immediately", at)
                self._orders.save(order)
            elif moved or decision.triggered:
                order.updated_at = at
                self._orders.save(order)
            return None

        # volume caps only apply once the feed reports volume
        quantity = self._execution.fill_quantity(order, quote.volume, self._participation)
        if order.time_in_force == TimeInForce.FOK and quantity < order.remaining_quantity:
            order.close(OrderStatus.CANCELLED, "Fill or kill order could not be filled completely", at)
            self._orders.save(order)
            return None
        if quantity <= 0:
            if order.time_in_force == TimeInForce.IOC:
                order.close(OrderStatus.CANCELLED, "Immediate or cancel remainder cancelled", at)
            self._orders.save(order)
            return None

        portfolio = self._portfolios.get(order.portfolio_id)
        if portfolio is None:
            order.close(OrderStatus.CANCELLED, "Portfolio no longer exists", at)
            self._orders.save(order)
            return None

        try:
            trade = self._executor.fill(
                portfolio,
                order.side,
                order.symbol,
                quantity,
                decision.fill_price,
                quote.price,
                at,
                order_id=order.id,
            )
        except REJECTABLE_FILL_ERRORS as exc:
            logger.warning("Order %s rejected at fill: %s", order.id, exc.message)
            order.close(OrderStatus.CANCELLED, exc.message, at)
            self._orders.save(order)
            return None

        order.record_fill(quantity, decision.fill_price, trade.commission, at)
        if order.time_in_force == TimeInForce.IOC and order.is_open:
            order.close(OrderStatus.CANCELLED, "Immediate or cancel remainder cancelled", at)
        self._orders.save(order)
        logger.info(
            "Order %s filled %d/%d %s @ %s",
            order.id,
            order.filled_quantity,
            order.quantity,
            order.symbol,
            decision.fill_price,
        )

        if order.oco_group_id:
            self._cancel_oco_siblings(order, at)
        return trade

    def cancel_children(self, parent: Order, at: datetime) -> None:
        for child in self._orders.list_children(parent.id):
            if child.is_open:
                child.close(
                    OrderStatus.CANCELLED, f"Parent order {parent.status.value}", at
                )
                self._orders.save(child)

    def _parent_ready(self, order: Order, at: datetime) -> bool:
        parent = self._orders.get(order.parent_order_id)
        if parent is None or parent.status in (OrderStatus.CANCELLED, OrderStatus.EXPIRED):
            reason = "Parent order missing" if parent is None else f"Parent order {parent.status.value}"
            order.close(OrderStatus.CANCELLED, reason, at)
            self._orders.save(order)
            return False
        return parent.status == OrderStatus.EXECUTED

    def _cancel_oco_siblings(self, order: Order, at: datetime) -> None:
        for sibling in self._orders.list_oco_group(order.oco_group_id):
            if sibling.id != order.id and sibling.is_open:
                sibling.close(OrderStatus.CANCELLED, "OCO sibling order filled", at)
                self._orders.save(sibling)
                logger.info("Cancelled OCO sibling %s of %s", sibling.id, order.id)
