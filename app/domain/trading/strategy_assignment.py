"""
Domain service: automatic strategy assignment.

Maps a portfolio's total value to one of the predefined trading
profiles and derives the risk limits that go with it.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.domain.trading.entities import RiskProfile
from app.domain.trading.risk import RiskParameters


@dataclass(frozen=True)
class StrategyProfile:
    id: str
    name: str
    description: str
    style: str
    min_balance: Decimal
    risk_level: RiskProfile
    max_positions: int
    stop_loss_pct: float
    take_profit_pct: float
    execution_frequency: str


@dataclass(frozen=True)
class StrategyRiskLimits:
    max_drawdown_pct: float
    max_position_pct: float
    daily_loss_limit: Decimal


PREDEFINED_STRATEGIES: dict[str, StrategyProfile] = {
    p.id: p
    for p in (
        StrategyProfile(
            id="day-trading-aggressive",
            name="Day Trading Aggressive",
            description="High-frequency day trading strategy for PDT-eligible accounts",
            style="day_trading",
            min_balance=Decimal("25000"),
            risk_level=RiskProfile.AGGRESSIVE,
            max_positions=10,
            stop_loss_pct=2.0,
            take_profit_pct=4.0,
            execution_frequency="minute",
        ),
        StrategyProfile(
            id="day-trading-conservative",
            name="Day Trading Conservative",
            description="Conservative day trading strategy for PDT-eligible accounts",
            style="day_trading",
            min_balance=Decimal("25000"),
            risk_level=RiskProfile.CONSERVATIVE,
            max_positions=5,
            stop_loss_pct=1.5,
            take_profit_pct=3.0,
            execution_frequency="minute",
        ),
        StrategyProfile(
            id="swing-trading-growth",
            name="Swing Trading Growth",
            description="Growth-focused swing trading for non-PDT accounts",
            style="swing_trading",
            min_balance=Decimal("0"),
            risk_level=RiskProfile.MODERATE,
            max_positions=3,
            stop_loss_pct=5.0,
            take_profit_pct=10.0,
            execution_frequency="hour",
        ),
        StrategyProfile(
            id="swing-trading-value",
            name="Swing Trading Value",
            description="Value-focused swing trading for smaller accounts",
            style="swing_trading",
            min_balance=Decimal("0"),
            risk_level=RiskProfile.CONSERVATIVE,
            max_positions=2,
            stop_loss_pct=3.0,
            take_profit_pct=8.0,
            execution_frequency="daily",
        ),
    )
}

_DRAWDOWN = {RiskProfile.AGGRESSIVE: 15.0, RiskProfile.MODERATE: 10.0, RiskProfile.CONSERVATIVE: 5.0}
_POSITION = {RiskProfile.AGGRESSIVE: 25.0, RiskProfile.MODERATE: 15.0, RiskProfile.CONSERVATIVE: 10.0}
_DAILY_LOSS = {
    RiskProfile.AGGRESSIVE: Decimal("0.05"),
    RiskProfile.MODERATE: Decimal("0.03"),
    RiskProfile.CONSERVATIVE: Decimal("0.02"),
}


class StrategyAssignmentService:
    """Selects a predefined strategy by account size."""

    def select_strategy(self, total_value: Decimal) -> StrategyProfile:
        if total_value >= 50000:
            return PREDEFINED_STRATEGIES["day-trading-aggressive"]
        if total_value >= 25000:
            return PREDEFINED_STRATEGIES["day-trading-conservative"]
        if total_value >= 5000:
            return PREDEFINED_STRATEGIES["swing-trading-growth"]
        return PREDEFINED_STRATEGIES["swing-trading-value"]

    @staticmethod
    def get(strategy_id: Optional[str]) -> Optional[StrategyProfile]:
        if strategy_id is None:
            return None
        return PREDEFINED_STRATEGIES.get(strategy_id)

    @staticmethod
    def risk_limits_for(
        profile: StrategyProfile, total_value: Decimal
    ) -> StrategyRiskLimits:
        level = profile.risk_level
        return StrategyRiskLimits(
            max_drawdown_pct=_DRAWDOWN[level],
            max_position_pct=_POSITION[level],
            daily_loss_limit=(total_value * _DAILY_LOSS[level]).quantize(Decimal("0.01")),
        )

    def risk_parameters_for(
        self,
        profile: StrategyProfile,
        total_value: Decimal,
        base: Optional[RiskParameters] = None,
    ) -> RiskParameters:
        """RiskParameters tightened to the profile's limits."""
        base = base or RiskParameters()
        limits = self.risk_limits_for(profile, total_value)
        return RiskParameters(
            max_position_pct=limits.max_position_pct,
            max_daily_loss=limits.daily_loss_limit,
            max_open_positions=profile.max_positions,
            volatility_threshold=base.volatility_threshold,
            emergency_drawdown_pct=limits.max_drawdown_pct,
        )
