"""
Domain service: simulated order execution.

Validates orders, decides whether an order fills at a given market price,
and computes slippage and commission for the fill.
"""

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.domain.trading.entities import (
    CENT,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
)
from app.domain.trading.errors import InvalidOrderError

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class ExecutionCosts:
    """Commission and slippage model for simulated fills."""

    per_share_fee: Decimal = Decimal("0.005")
    percentage_fee: Decimal = Decimal("0.001")
    minimum_fee: Decimal = Decimal("1.00")
    maximum_fee: Decimal = Decimal("65.00")
    slippage_enabled: bool = True
    slippage_basis_points: Decimal = Decimal("5")
    slippage_max: Decimal = Decimal("0.50")


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of evaluating an order against a market price.

    Attributes:
        fill: Whether the order should fill now.
        fill_price: Execution price when ``fill`` is True.
        reason: Short human-readable explanation.
        triggered: True when a stop-limit order's stop was crossed on this
            evaluation and the order should move to TRIGGERED.
    """

    fill: bool
    fill_price: Optional[Decimal] = None
    reason: str = ""
    triggered: bool = False


class OrderExecutionService:
    """Pure order matching against the latest price."""

    def __init__(self, costs: Optional[ExecutionCosts] = None) -> None:
        self._costs = costs or ExecutionCosts()

    def commission(self, quantity: int, price: Decimal) -> Decimal:
        c = self._costs
        fee = Decimal(quantity) * c.per_share_fee + price * quantity * c.percentage_fee
        fee = min(max(fee, c.minimum_fee), c.maximum_fee)
        return fee.quantize(CENT, rounding=ROUND_HALF_UP)

    def apply_slippage(self, price: Decimal, side: OrderSide) -> Decimal:
        """Move the price against the trader: buys pay more, sells receive less."""
        c = self._costs
        if not c.slippage_enabled:
            return price
        amount = min(price * c.slippage_basis_points / Decimal("10000"), c.slippage_max)
        slipped = price + amount if side == OrderSide.BUY else price - amount
        return slipped.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    def validate_order(self, order: Order) -> None:
        """Raise InvalidOrderError when the order is missing required prices."""
        if order.quantity <= 0:
            raise InvalidOrderError("quantity must be positive")

        t = order.order_type
        if t == OrderType.LIMIT and order.limit_price is None:
            raise InvalidOrderError("Limit orders require a limit price")
        if t == OrderType.STOP_LOSS and order.stop_price is None:
            raise InvalidOrderError("Stop loss orders require a stop price")
        if t == OrderType.TAKE_PROFIT and order.trigger_price is None:
            raise InvalidOrderError("Take profit orders require a trigger price")
        if t == OrderType.STOP_LIMIT and (
            order.stop_price is None or order.limit_price is None
        ):
            raise InvalidOrderError(
                "Stop limit orders require both stop price and limit price"
            )
        if t == OrderType.TRAILING_STOP:
            has_amount = order.trail_amount is not None
            has_percent = order.trail_percent is not None
            if has_amount == has_percent:
                raise InvalidOrderError(
                    "Trailing stop orders require either trail amount or trail percent"
                )

        for name in ("limit_price", "stop_price", "trigger_price", "trail_amount", "trail_percent"):
            value = getattr(order, name)
            if value is not None and value <= 0:
                raise InvalidOrderError(f"{name} must be positive")

    def update_trailing_stop(self, order: Order, price: Decimal) -> bool:
        """Ratchet a trailing stop toward the market. Returns True if it moved."""
        if order.order_type != OrderType.TRAILING_STOP:
            return False

        if order.side == OrderSide.SELL:
            extreme = price if order.extreme_price is None else max(order.extreme_price, price)
            candidate = extreme - self._trail(order, extreme)
            new_stop = candidate if order.stop_price is None else max(order.stop_price, candidate)
        else:
            extreme = price if order.extreme_price is None else min(order.extreme_price, price)
            candidate = extreme + self._trail(order, extreme)
            new_stop = candidate if order.stop_price is None else min(order.stop_price, candidate)

        new_stop = new_stop.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
        moved = new_stop != order.stop_price
        order.extreme_price = extreme
        order.stop_price = new_stop
        if moved:
            logger.debug("Trailing stop %s moved to %s", order.id, new_stop)
        return moved

    def evaluate(self, order: Order, price: Decimal) -> TriggerDecision:
        """Decide whether ``order`` fills at market ``price``.

        Trailing stops must be updated with ``update_trailing_stop`` first.
        """
        t = order.order_type
        buy = order.side == OrderSide.BUY

        if t == OrderType.MARKET:
            return TriggerDecision(
                fill=True, fill_price=self.apply_slippage(price, order.side), reason="market"
            )

        if t == OrderType.LIMIT:
            return self._evaluate_limit(order, price)

        if t in (OrderType.STOP_LOSS, OrderType.TRAILING_STOP):
            stop = order.stop_price
            hit = price >= stop if buy else price <= stop
            if hit:
                return TriggerDecision(
                    fill=True,
                    fill_price=self.apply_slippage(price, order.side),
                    reason=f"stop {stop} reached",
                )
            return TriggerDecision(fill=False, reason="stop not reached")

        if t == OrderType.TAKE_PROFIT:
            target = order.trigger_price
            hit = price <= target if buy else price >= target
            if hit:
                return TriggerDecision(
                    fill=True, fill_price=price, reason=f"target {target} reached"
                )
            return TriggerDecision(fill=False, reason="target not reached")

        if t == OrderType.STOP_LIMIT:
            triggered_now = False
            if order.status != OrderStatus.TRIGGERED and order.filled_quantity == 0:
                stop = order.stop_price
                hit = price >= stop if buy else price <= stop
                if not hit:
                    return TriggerDecision(fill=False, reason="stop not reached")
                triggered_now = True
            decision = self._evaluate_limit(order, price)
            return TriggerDecision(
                fill=decision.fill,
                fill_price=decision.fill_price,
                reason=decision.reason,
                triggered=triggered_now,
            )

        return TriggerDecision(fill=False, reason=f"unsupported order type {t}")

    @staticmethod
    def fill_quantity(order: Order, quote_volume: int, participation: float) -> int:
        """Cap a fill at a share of the quoted volume, when volume is known."""
        remaining = order.remaining_quantity
        if quote_volume <= 0 or participation <= 0:
            return remaining
        cap = math.floor(quote_volume * participation)
        return max(0, min(remaining, cap))

    # ── internals ────────────────────────────────────────────

    @staticmethod
    def _evaluate_limit(order: Order, price: Decimal) -> TriggerDecision:
        limit = order.limit_price
        if order.side == OrderSide.BUY:
            if price <= limit:
                return TriggerDecision(fill=True, fill_price=min(price, limit), reason="limit reached")
        elif price >= limit:
            return TriggerDecision(fill=True, fill_price=max(price, limit), reason="limit reached")
        return TriggerDecision(fill=False, reason="limit not reached")

    @staticmethod
    def _trail(order: Order, reference: Decimal) -> Decimal:
        if order.trail_amount is not None:
            return order.trail_amount
        return reference * order.trail_percent / 100
