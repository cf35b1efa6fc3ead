"""
Adapter: Order repository.

Implements OrderRepository port over the orders table.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine

from app.domain.trading.entities import (
    OPEN_ORDER_STATUSES,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
)
from app.domain.trading.ports import OrderRepository
from app.infrastructure.trading.schema import orders

logger = logging.getLogger(__name__)


def _to_order(row) -> Order:
    return Order(
        id=UUID(row.id),
        portfolio_id=UUID(row.portfolio_id),
        symbol=row.symbol,
        order_type=OrderType(row.order_type),
        side=OrderSide(row.side),
        quantity=row.quantity,
        limit_price=row.limit_price,
        stop_price=row.stop_price,
        trigger_price=row.trigger_price,
        trail_amount=row.trail_amount,
        trail_percent=row.trail_percent,
        extreme_price=row.extreme_price,
        time_in_force=TimeInForce(row.time_in_force),
        status=OrderStatus(row.status),
        filled_quantity=row.filled_quantity,
        average_fill_price=row.average_fill_price,
        commission=row.commission,
        oco_group_id=row.oco_group_id,
        parent_order_id=UUID(row.parent_order_id) if row.parent_order_id else None,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        executed_at=row.executed_at,
        cancelled_at=row.cancelled_at,
        cancellation_reason=row.cancellation_reason,
    )


def _to_values(order: Order) -> dict:
    return {
        "portfolio_id": str(order.portfolio_id),
        "symbol": order.symbol,
        "order_type": order.order_type.value,
        "side": order.side.value,
        "quantity": order.quantity,
        "limit_price": order.limit_price,
        "stop_price": order.stop_price,
        "trigger_price": order.trigger_price,
        "trail_amount": order.trail_amount,
        "trail_percent": order.trail_percent,
        "extreme_price": order.extreme_price,
        "time_in_force": order.time_in_force.value,
        "status": order.status.value,
        "filled_quantity": order.filled_quantity,
        "average_fill_price": order.average_fill_price,
        "commission": order.commission,
        "oco_group_id": order.oco_group_id,
        "parent_order_id": str(order.parent_order_id) if order.parent_order_id else None,
        "expires_at": order.expires_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "executed_at": order.executed_at,
        "cancelled_at": order.cancelled_at,
        "cancellation_reason": order.cancellation_reason,
    }


class OrderRepositoryAdapter(OrderRepository):
    """SQLAlchemy implementation of order storage."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, order_id: UUID) -> Optional[Order]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(orders).where(orders.c.id == str(order_id))
            ).first()
        return _to_order(row) if row else None

    def save(self, order: Order) -> None:
        values = _to_values(order)
        with self._engine.begin() as conn:
            result = conn.execute(
                update(orders).where(orders.c.id == str(order.id)).values(**values)
            )
            if result.rowcount == 0:
                conn.execute(insert(orders).values(id=str(order.id), **values))
        logger.debug("Saved order %s (%s)", order.id, order.status.value)

    def list_orders(
        self,
        portfolio_id: Optional[UUID] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        query = select(orders)
        if portfolio_id is not None:
            query = query.where(orders.c.portfolio_id == str(portfolio_id))
        if status is not None:
            query = query.where(orders.c.status == status.value)
        query = query.order_by(orders.c.created_at.desc())
        with self._engine.connect() as conn:
            return [_to_order(row) for row in conn.execute(query).all()]

    def list_open(self, symbol: Optional[str] = None) -> list[Order]:
        query = select(orders).where(
            orders.c.status.in_([s.value for s in OPEN_ORDER_STATUSES])
        )
        if symbol is not None:
            query = query.where(orders.c.symbol == symbol)
        query = query.order_by(orders.c.created_at.asc())
        with self._engine.connect() as conn:
            return [_to_order(row) for row in conn.execute(query).all()]

    def list_children(self, parent_order_id: UUID) -> list[Order]:
        query = (
            select(orders)
            .where(orders.c.parent_order_id == str(parent_order_id))
            .order_by(orders.c.created_at.asc())
        )
        with self._engine.connect() as conn:
            return [_to_order(row) for row in conn.execute(query).all()]

    def list_oco_group(self, oco_group_id: str) -> list[Order]:
        query = (
            select(orders)
            .where(orders.c.oco_group_id == oco_group_id)
            .order_by(orders.c.created_at.asc())
        )
        with self._engine.connect() as conn:
            return [_to_order(row) for row in conn.execute(query).all()]
