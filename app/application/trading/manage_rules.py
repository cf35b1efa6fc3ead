"""
Use cases: Trading rule lifecycle.

Input: CreateTradingRuleCommand / rule ids / portfolio filter
Output: TradingRule entities, ValidationResult
Side effects: Writes and deletes rules.
Failure cases: PortfolioNotFoundError, InvalidRuleError, RuleNotFoundError.
"""

import logging
from typing import Callable, Optional
from uuid import UUID

from app.application.trading.dtos import CreateTradingRuleCommand
from app.application.trading.manage_portfolios import load_portfolio
from app.domain.trading.entities import TradingRule, utc_now
from app.domain.trading.errors import InvalidRuleError, RuleNotFoundError
from app.domain.trading.ports import PortfolioRepository, TradingRuleRepository
from app.domain.trading.rules import RuleEngine, ValidationResult

logger = logging.getLogger(__name__)


def build_rule(command: CreateTradingRuleCommand, created_at=None) -> TradingRule:
    rule = TradingRule(
        portfolio_id=command.portfolio_id,
        name=command.name,
        rule_type=command.rule_type,
        priority=command.priority,
        is_active=command.is_active,
        conditions=list(command.conditions),
        actions=list(command.actions),
    )
    if created_at is not None:
        rule.created_at = created_at
    return rule


class ValidateTradingRuleUseCase:
    """Dry-run validation; nothing is stored."""

    def __init__(self, engine: RuleEngine) -> None:
        self._engine = engine

    def execute(self, command: CreateTradingRuleCommand) -> ValidationResult:
        return self._engine.validate_rule(build_rule(command))


class CreateTradingRuleUseCase:
    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        rule_repo: TradingRuleRepository,
        engine: RuleEngine,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._rules = rule_repo
        self._engine = engine
        self._clock = clock

    def execute(self, command: CreateTradingRuleCommand) -> TradingRule:
        load_portfolio(self._portfolios, command.portfolio_id)
        rule = build_rule(command, created_at=self._clock())
        validation = self._engine.validate_rule(rule)
        if not validation.is_valid:
            raise InvalidRuleError(validation.errors)
        for warning in validation.warnings:
            logger.info("Rule %s: %s", rule.name, warning)

        self._rules.save(rule)
        logger.info("Created %s rule %s (%s)", rule.rule_type.value, rule.id, rule.name)
        return rule


class ListTradingRulesUseCase:
    def __init__(self, rule_repo: TradingRuleRepository) -> None:
        self._rules = rule_repo

    def execute(
        self, portfolio_id: Optional[UUID] = None, active_only: bool = False
    ) -> list[TradingRule]:
        return self._rules.list_rules(portfolio_id=portfolio_id, active_only=active_only)


class DeleteTradingRuleUseCase:
    def __init__(self, rule_repo: TradingRuleRepository) -> None:
        self._rules = rule_repo

    def execute(self, rule_id: UUID) -> None:
        if not self._rules.delete(rule_id):
            raise RuleNotFoundError(str(rule_id))
        logger.info("Deleted rule %s", rule_id)
