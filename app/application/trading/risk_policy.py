"""
Application service: choose the risk limits that apply to a portfolio.

Portfolios with an assigned strategy use that strategy's limits;
all others use the configured defaults.
"""

from app.domain.trading.entities import Portfolio
from app.domain.trading.risk import RiskManagementService, RiskParameters
from app.domain.trading.strategy_assignment import StrategyAssignmentService


class RiskPolicy:
    def __init__(
        self,
        defaults: RiskParameters,
        assignment: StrategyAssignmentService,
    ) -> None:
        self._defaults = defaults
        self._assignment = assignment

    def for_portfolio(self, portfolio: Portfolio) -> RiskManagementService:
        profile = self._assignment.get(portfolio.assigned_strategy)
        if profile is None:
            return RiskManagementService(self._defaults)
        params = self._assignment.risk_parameters_for(
            profile, portfolio.total_value, base=self._defaults
        )
        return RiskManagementService(params)
