"""
Domain service: pre-trade risk management.

Validates proposed buys against position concentration, daily loss,
open-position count and volatility limits, and answers emergency-stop
and stop-loss / take-profit questions.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from app.domain.trading.entities import CENT, OrderSide, Portfolio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskParameters:
    """Risk limits applied to every portfolio.

    Attributes:
        max_position_pct: Largest single position as a percent of total value.
        max_daily_loss: Realized loss for the day that blocks new buys.
        max_open_positions: Number of distinct symbols that may be held.
        volatility_threshold: Daily volatility above which a warning is issued.
        emergency_drawdown_pct: Drawdown from peak that halts automation.
    """

    max_position_pct: float = 10.0
    max_daily_loss: Decimal = Decimal("1000")
    max_open_positions: int = 10
    volatility_threshold: float = 0.05
    emergency_drawdown_pct: float = 10.0


@dataclass(frozen=True)
class RiskCheckResult:
    allowed: bool
    reason: Optional[str] = None
    adjusted_quantity: Optional[int] = None
    warnings: list[str] = field(default_factory=list)


class RiskManagementService:
    """Applies RiskParameters to a real portfolio."""

    def __init__(self, parameters: Optional[RiskParameters] = None) -> None:
        self._params = parameters or RiskParameters()

    @property
    def parameters(self) -> RiskParameters:
        return self._params

    def validate_trade(
        self,
        portfolio: Portfolio,
        side: OrderSide,
        symbol: str,
        quantity: int,
        price: Decimal,
        daily_realized_pnl: Decimal = Decimal("0"),
        volatility: Optional[float] = None,
    ) -> RiskCheckResult:
        """Check a proposed trade against the risk limits.

        Sells always pass; share ownership is enforced by the ledger.

        Args:
            portfolio: Portfolio marked to current prices.
            side: Trade direction.
            symbol: Stock ticker.
            quantity: Shares requested.
            price: Expected execution price.
            daily_realized_pnl: Realized P&L of the portfolio so far today.
            volatility: Optional daily volatility of the symbol.

        Returns:
            RiskCheckResult. When the position limit is the only problem,
            ``adjusted_quantity`` holds the largest quantity that would pass.
        """
        if side == OrderSide.SELL:
            return RiskCheckResult(allowed=True)

        params = self._params
        warnings: list[str] = []

        if -daily_realized_pnl >= params.max_daily_loss:
            return RiskCheckResult(
                allowed=False,
                reason=(
                    f"Daily loss limit reached: {(-daily_realized_pnl).quantize(CENT)} "
                    f">= {params.max_daily_loss}"
                ),
                adjusted_quantity=0,
            )

        held = portfolio.positions.get(symbol)
        if held is None and len(portfolio.positions) >= params.max_open_positions:
            return RiskCheckResult(
                allowed=False,
                reason=(
                    f"Maximum open positions reached ({params.max_open_positions})"
                ),
                adjusted_quantity=0,
            )

        total_value = portfolio.total_value
        limit_value = total_value * Decimal(str(params.max_position_pct)) / 100
        existing_value = held.quantity * price if held else Decimal("0")
        resulting_value = existing_value + price * quantity
        if resulting_value > limit_value:
            room = limit_value - existing_value
            allowed_qty = max(0, math.floor(room / price)) if price > 0 else 0
            pct = float(resulting_value / total_value * 100) if total_value > 0 else 100.0
            return RiskCheckResult(
                allowed=False,
                reason=(
                    f"Position size {pct:.2f}% exceeds limit of "
                    f"{params.max_position_pct}% of portfolio"
                ),
                adjusted_quantity=allowed_qty,
            )

        if volatility is not None and volatility > params.volatility_threshold:
            warnings.append(
                f"High volatility for {symbol}: {volatility * 100:.2f}% "
                f"(threshold {params.volatility_threshold * 100:.2f}%)"
            )

        return RiskCheckResult(allowed=True, warnings=warnings)

    def check_emergency_stop(
        self, current_value: Decimal, peak_value: Decimal
    ) -> bool:
        """Return True when drawdown from peak reaches the emergency limit."""
        if peak_value <= 0:
            return False
        drawdown_pct = float((peak_value - current_value) / peak_value * 100)
        if drawdown_pct >= self._params.emergency_drawdown_pct:
            logger.warning(
                "Emergency stop: drawdown %.2f%% >= %.2f%%",
                drawdown_pct,
                self._params.emergency_drawdown_pct,
            )
            return True
        return False

    @staticmethod
    def stop_loss_price(
        entry_price: Decimal, is_long: bool = True, pct: float = 5.0
    ) -> Decimal:
        factor = Decimal(str(pct)) / 100
        price = entry_price * (1 - factor) if is_long else entry_price * (1 + factor)
        return price.quantize(CENT)

    @staticmethod
    def take_profit_price(
        entry_price: Decimal, is_long: bool = True, pct: float = 10.0
    ) -> Decimal:
        factor = Decimal(str(pct)) / 100
        price = entry_price * (1 + factor) if is_long else entry_price * (1 - factor)
        return price.quantize(CENT)
