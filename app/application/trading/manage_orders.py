"""
Use cases: Cancel, list and expire orders.

Input: order ids / filters / the current time
Output: Order entities
Side effects: Writes order status changes.
Failure cases: OrderNotFoundError, OrderNotCancellableError.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from app.application.trading.order_processor import OrderProcessor
from app.domain.trading.entities import Order, OrderStatus, TimeInForce, utc_now
from app.domain.trading.errors import OrderNotCancellableError, OrderNotFoundError
from app.domain.trading.market_hours import MarketHoursService
from app.domain.trading.ports import OrderRepository

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    """Cancels an open order together with any bracket legs hanging off it."""

    def __init__(
        self,
        order_repo: OrderRepository,
        processor: OrderProcessor,
        clock: Callable = utc_now,
    ) -> None:
        self._orders = order_repo
        self._processor = processor
        self._clock = clock

    def execute(self, order_id: UUID, reason: str = "Cancelled by user") -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        if not order.is_open:
            raise OrderNotCancellableError(str(order_id), order.status.value)

        now = self._clock()
        order.close(OrderStatus.CANCELLED, reason, now)
        self._orders.save(order)
        self._processor.cancel_children(order, now)
        logger.info("Cancelled order %s: %s", order_id, reason)
        return order


class ListOrdersUseCase:
    def __init__(self, order_repo: OrderRepository) -> None:
        self._orders = order_repo

    def execute(
        self,
        portfolio_id: Optional[UUID] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        return self._orders.list_orders(portfolio_id=portfolio_id, status=status)


class ExpireOrdersUseCase:
    """Expires DAY orders past their session close and GTC orders past ``expires_at``."""

    def __init__(
        self,
        order_repo: OrderRepository,
        processor: OrderProcessor,
        market_hours: MarketHoursService,
        clock: Callable = utc_now,
    ) -> None:
        self._orders = order_repo
        self._processor = processor
        self._market_hours = market_hours
        self._clock = clock

    def execute(self, now: Optional[datetime] = None) -> list[Order]:
        now = now or self._clock()
        expired = []
        for order in self._orders.list_open():
            reason = self._expiry_reason(order, now)
            if reason is None:
                continue
            order.close(OrderStatus.EXPIRED, reason, now)
            self._orders.save(order)
            self._processor.cancel_children(order, now)
            expired.append(order)

        if expired:
            logger.info("Expired %d orders", len(expired))
        return expired

    def _expiry_reason(self, order: Order, now: datetime) -> Optional[str]:
        if order.time_in_force == TimeInForce.DAY:
            if now >= self._market_hours.next_session_close(order.created_at):
                return "Day order expired at market close"
        elif order.time_in_force == TimeInForce.GTC:
            if order.expires_at is not None and now >= order.expires_at:
                return "Order reached its expiry time"
        return None
