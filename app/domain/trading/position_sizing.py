"""
Domain service: position sizing.

Turns a sizing method and a portfolio value into a whole number of shares.
Every method caps its exposure; quantities are floored and never negative.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.domain.trading.entities import RiskProfile, SizingMethod
from app.domain.trading.errors import InvalidPositionSizeError

logger = logging.getLogger(__name__)

FIXED_CAP = 0.20
PERCENTAGE_CAP = 20.0
KELLY_CAP = 0.25
VOLATILITY_ADJUSTED_CAP = 15.0
DEFAULT_VOLATILITY = 0.03


@dataclass(frozen=True)
class PositionSizeRequest:
    """Inputs describing the instrument and the account being sized."""

    symbol: str
    portfolio_value: Decimal
    current_price: Decimal
    volatility: Optional[float] = None
    win_rate: Optional[float] = None
    avg_win: Optional[float] = None
    avg_loss: Optional[float] = None
    max_risk_pct: Optional[float] = None
    held_quantity: int = 0


@dataclass(frozen=True)
class SizingParams:
    """Method-specific knobs. Unset values fall back to each method's default."""

    dollar_amount: Optional[float] = None
    percentage: Optional[float] = None
    win_rate: Optional[float] = None
    avg_win: Optional[float] = None
    avg_loss: Optional[float] = None
    base_percentage: Optional[float] = None
    volatility_target: Optional[float] = None
    risk_target: Optional[float] = None


@dataclass(frozen=True)
class PositionSizeResult:
    quantity: int
    dollar_amount: Decimal
    percentage_of_portfolio: float
    reasoning: str


@dataclass(frozen=True)
class SizingRecommendation:
    method: SizingMethod
    params: SizingParams
    reasoning: str


class PositionSizingService:
    """Computes position sizes with fixed, percentage, Kelly,
    volatility-adjusted, risk-parity and full-position methods."""

    def calculate(
        self,
        method: SizingMethod,
        request: PositionSizeRequest,
        params: Optional[SizingParams] = None,
    ) -> PositionSizeResult:
        """Size a position.

        Args:
            method: Sizing method to apply.
            request: Portfolio value, price and optional statistics.
            params: Method-specific parameters.

        Returns:
            PositionSizeResult with a floored, non-negative quantity.

        Raises:
            InvalidPositionSizeError: If price or portfolio value is not positive.
        """
        params = params or SizingParams()
        if request.current_price <= 0:
            raise InvalidPositionSizeError("current price must be positive")
        if method != SizingMethod.FULL_POSITION and request.portfolio_value <= 0:
            raise InvalidPositionSizeError("portfolio value must be positive")

        if method == SizingMethod.FIXED:
            result = self._fixed(request, params)
        elif method == SizingMethod.PERCENTAGE:
            result = self._percentage(request, params)
        elif method == SizingMethod.KELLY:
            result = self._kelly(request, params)
        elif method == SizingMethod.VOLATILITY_ADJUSTED:
            result = self._volatility_adjusted(request, params)
        elif method == SizingMethod.RISK_PARITY:
            result = self._risk_parity(request, params)
        elif method == SizingMethod.FULL_POSITION:
            result = self._full_position(request)
        else:
            raise InvalidPositionSizeError(f"unsupported sizing method {method}")

        logger.debug(
            "Position size for %s via %s: %d shares (%s)",
            request.symbol,
            method.value,
            result.quantity,
            result.dollar_amount,
        )
        return result

    def recommend_method(
        self,
        market_volatility: float,
        strategy_win_rate: Optional[float] = None,
        risk_tolerance: RiskProfile = RiskProfile.MODERATE,
    ) -> SizingRecommendation:
        """Pick a sizing method for the current market and strategy."""
        if market_volatility > 0.05:
            return SizingRecommendation(
                method=SizingMethod.VOLATILITY_ADJUSTED,
                params=SizingParams(base_percentage=3, volatility_target=0.02),
                reasoning="High volatility environment - using volatility-adjusted sizing",
            )
        if strategy_win_rate is not None and strategy_win_rate > 0.6:
            return SizingRecommendation(
                method=SizingMethod.KELLY,
                params=SizingParams(win_rate=strategy_win_rate),
                reasoning="High win rate strategy - using Kelly Criterion",
            )
        if risk_tolerance == RiskProfile.CONSERVATIVE:
            return SizingRecommendation(
                method=SizingMethod.RISK_PARITY,
                params=SizingParams(risk_target=0.005),
                reasoning="Conservative approach - using risk parity",
            )
        if risk_tolerance == RiskProfile.AGGRESSIVE:
            return SizingRecommendation(
                method=SizingMethod.PERCENTAGE,
                params=SizingParams(percentage=10),
                reasoning="Aggressive approach - using higher percentage",
            )
        return SizingRecommendation(
            method=SizingMethod.PERCENTAGE,
            params=SizingParams(percentage=5),
            reasoning="Moderate approach - using percentage-based sizing",
        )

    def max_safe_size(
        self, request: PositionSizeRequest, max_risk_pct: float = 2.0
    ) -> PositionSizeResult:
        """Largest position whose 2-sigma adverse move loses at most ``max_risk_pct``."""
        if request.current_price <= 0 or request.portfolio_value <= 0:
            raise InvalidPositionSizeError(
                "price and portfolio value must be positive"
            )
        volatility = request.volatility or DEFAULT_VOLATILITY
        max_risk_dollars = float(request.portfolio_value) * max_risk_pct / 100
        max_position_value = max_risk_dollars / (volatility * 2)
        return self._result(
            request,
            max_position_value,
            f"Maximum safe size based on {max_risk_pct}% portfolio risk",
        )

    # ── methods ──────────────────────────────────────────────

    def _fixed(
        self, request: PositionSizeRequest, params: SizingParams
    ) -> PositionSizeResult:
        if params.dollar_amount is None:
            raise InvalidPositionSizeError("fixed sizing requires a dollar amount")
        target = min(params.dollar_amount, float(request.portfolio_value) * FIXED_CAP)
        return self._result(
            request, target, f"Fixed dollar amount sizing: ${params.dollar_amount} target"
        )

    def _percentage(
        self, request: PositionSizeRequest, params: SizingParams
    ) -> PositionSizeResult:
        pct = min(params.percentage if params.percentage is not None else 5.0, PERCENTAGE_CAP)
        target = float(request.portfolio_value) * pct / 100
        return self._result(
            request, target, f"Percentage-based sizing: {pct}% of portfolio"
        )

    def _kelly(
        self, request: PositionSizeRequest, params: SizingParams
    ) -> PositionSizeResult:
        p = params.win_rate or request.win_rate or 0.55
        avg_win = params.avg_win or request.avg_win or 0.08
        avg_loss = params.avg_loss or request.avg_loss or 0.05
        b = avg_win / avg_loss
        q = 1 - p
        fraction = (b * p - q) / b
        capped = max(0.0, min(fraction, KELLY_CAP))
        target = float(request.portfolio_value) * capped
        return self._result(
            request,
            target,
            f"Kelly Criterion sizing: {fraction * 100:.1f}% of portfolio (capped at 25%)",
        )

    def _volatility_adjusted(
        self, request: PositionSizeRequest, params: SizingParams
    ) -> PositionSizeResult:
        base = params.base_percentage or 5.0
        target_vol = params.volatility_target or 0.02
        volatility = request.volatility or DEFAULT_VOLATILITY
        pct = min(base * target_vol / volatility, VOLATILITY_ADJUSTED_CAP)
        target = float(request.portfolio_value) * pct / 100
        return self._result(
            request,
            target,
            f"Volatility-adjusted sizing: {pct:.1f}% (volatility: {volatility * 100:.1f}%)",
        )

    def _risk_parity(
        self, request: PositionSizeRequest, params: SizingParams
    ) -> PositionSizeResult:
        risk_target = params.risk_target or 0.01
        volatility = request.volatility or DEFAULT_VOLATILITY
        max_risk_pct = request.max_risk_pct or 2.0
        value = float(request.portfolio_value)
        price = float(request.current_price)
        risk_dollars = min(value * risk_target, value * max_risk_pct / 100)
        quantity = max(0, math.floor(risk_dollars / (price * volatility)))
        return self._from_quantity(
            request,
            quantity,
            f"Risk parity sizing: {risk_target * 100}% risk target "
            f"(volatility: {volatility * 100:.1f}%)",
        )

    def _full_position(self, request: PositionSizeRequest) -> PositionSizeResult:
        return self._from_quantity(
            request,
            max(0, request.held_quantity),
            f"Full position: {request.held_quantity} shares held",
        )

    # ── helpers ──────────────────────────────────────────────

    def _result(
        self, request: PositionSizeRequest, target_dollars: float, reasoning: str
    ) -> PositionSizeResult:
        quantity = max(0, math.floor(target_dollars / float(request.current_price)))
        return self._from_quantity(request, quantity, reasoning)

    @staticmethod
    def _from_quantity(
        request: PositionSizeRequest, quantity: int, reasoning: str
    ) -> PositionSizeResult:
        dollar_amount = request.current_price * quantity
        pct = (
            float(dollar_amount / request.portfolio_value * 100)
            if request.portfolio_value > 0
            else 0.0
        )
        return PositionSizeResult(
            quantity=quantity,
            dollar_amount=dollar_amount,
            percentage_of_portfolio=pct,
            reasoning=reasoning,
        )
