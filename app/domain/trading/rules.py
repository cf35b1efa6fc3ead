"""
Domain service: rule-based trading automation.

Evaluates user-defined rules against a trading context, turns fired
rules into proposed trades, validates rule definitions and orders
competing rules.

Conditions are folded left to right. Each condition is combined with
the running result using the logical operator of the condition before
it; the first condition is combined with AND.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from app.domain.trading.entities import (
    ConditionOperator,
    LogicalOperator,
    OrderSide,
    Position,
    PriceType,
    RuleAction,
    RuleCondition,
    RuleType,
    SizingMethod,
    TradingRule,
)
from app.domain.trading.errors import TradingDomainError
from app.domain.trading.position_sizing import (
    PositionSizeRequest,
    PositionSizingService,
    SizingParams,
)

logger = logging.getLogger(__name__)

RULE_TYPE_ORDER = {RuleType.EXIT: 0, RuleType.RISK: 1, RuleType.ENTRY: 2}


@dataclass(frozen=True)
class TradingContext:
    """Everything a rule may look at for one symbol."""

    symbol: str
    current_price: Decimal
    portfolio_value: Decimal
    cash_balance: Decimal
    position: Optional[Position] = None
    recommendation: dict[str, Any] = field(default_factory=dict)
    technical: dict[str, Optional[float]] = field(default_factory=dict)
    market_open: bool = True
    volume_spike: bool = False


@dataclass(frozen=True)
class ProposedTrade:
    rule_id: UUID
    rule_name: str
    symbol: str
    side: OrderSide
    quantity: int
    price: Decimal
    price_type: PriceType
    reasoning: str


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RuleEngine:
    """Evaluates trading rules. Stateless apart from its sizing service."""

    def __init__(self, sizing: Optional[PositionSizingService] = None) -> None:
        self._sizing = sizing or PositionSizingService()

    def evaluate_rule(self, rule: TradingRule, context: TradingContext) -> bool:
        if not rule.is_active:
            return False
        try:
            return self.evaluate_conditions(rule.conditions, context)
        except (ArithmeticError, TypeError, ValueError):
            logger.exception("Error evaluating rule %s", rule.id)
            return False

    def evaluate_conditions(
        self, conditions: list[RuleCondition], context: TradingContext
    ) -> bool:
        if not conditions:
            return True

        result = True
        logical = LogicalOperator.AND
        for condition in conditions:
            outcome = self.evaluate_condition(condition, context)
            if logical == LogicalOperator.AND:
                result = result and outcome
            else:
                result = result or outcome
            logical = condition.logical or LogicalOperator.AND
        return result

    def evaluate_condition(
        self, condition: RuleCondition, context: TradingContext
    ) -> bool:
        actual = self.resolve_field(condition.field, context)
        expected = condition.value
        op = condition.operator

        if op == ConditionOperator.EQUALS:
            return _equals(actual, expected)
        if op == ConditionOperator.NOT_EQUALS:
            return not _equals(actual, expected)

        a = _as_float(actual)
        b = _as_float(expected)
        if a is None or b is None:
            return False
        if op == ConditionOperator.GREATER_THAN:
            return a > b
        if op == ConditionOperator.LESS_THAN:
            return a < b
        if op == ConditionOperator.GREATER_EQUAL:
            return a >= b
        if op == ConditionOperator.LESS_EQUAL:
            return a <= b

        logger.warning("Unknown operator: %s", op)
        return False

    def resolve_field(self, name: str, context: TradingContext) -> Any:
        """Look up a context value by field name. Unknown fields resolve to None."""
        parent, _, child = name.partition(".")
        if child:
            if parent == "technical":
                return context.technical.get(child)
            if parent == "recommendation":
                return context.recommendation.get(child)
            if parent == "position":
                return _position_attr(context.position, child)
            logger.debug("Unknown parent field: %s", parent)
            return None

        position = context.position
        pnl_pct = position.unrealized_pnl_pct if position else 0.0
        if name == "symbol":
            return context.symbol
        if name == "current_price":
            return context.current_price
        if name == "portfolio_value":
            return context.portfolio_value
        if name == "cash_balance":
            return context.cash_balance
        if name == "portfolio_cash_percentage":
            if context.portfolio_value <= 0:
                return None
            return float(context.cash_balance / context.portfolio_value * 100)
        if name in ("ai_recommendation", "ml_recommendation"):
            return context.recommendation.get("type")
        if name in ("confidence_score", "ml_confidence"):
            return context.recommendation.get("confidence")
        if name == "position_gain_percent":
            return max(pnl_pct, 0.0)
        if name == "position_loss_percent":
            return max(-pnl_pct, 0.0)
        if name == "proposed_position_percent":
            if position is None or context.portfolio_value <= 0:
                return 0.0
            return float(position.market_value / context.portfolio_value * 100)
        if name == "market_hours":
            return context.market_open
        if name == "volume_spike":
            return context.volume_spike
        if name == "rsi":
            return context.technical.get("rsi")
        logger.debug("Unknown field: %s", name)
        return None

    def generate_trades(
        self, rule: TradingRule, context: TradingContext
    ) -> list[ProposedTrade]:
        """Turn a fired rule's actions into trades. Zero-quantity trades are dropped."""
        trades = []
        for action in rule.actions:
            if action.side is None:
                continue
            try:
                quantity = self._quantity(action, context)
            except TradingDomainError as exc:
                logger.warning("Cannot size action of rule %s: %s", rule.id, exc.message)
                continue
            if quantity <= 0:
                continue
            trades.append(
                ProposedTrade(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    symbol=context.symbol,
                    side=action.side,
                    quantity=quantity,
                    price=self._price(action, context),
                    price_type=action.price_type,
                    reasoning=f"Rule '{rule.name}' triggered",
                )
            )
        return trades

    def validate_rule(self, rule: TradingRule) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if not rule.conditions:
            errors.append("Rule must have at least one condition")
        for i, condition in enumerate(rule.conditions, start=1):
            if not condition.field:
                errors.append(f"Condition {i}: Field is required")
            if not condition.operator:
                errors.append(f"Condition {i}: Operator is required")
            if condition.value is None:
                errors.append(f"Condition {i}: Value is required")

        if not rule.actions:
            errors.append("Rule must have at least one action")
        for i, action in enumerate(rule.actions, start=1):
            if action.side is None:
                errors.append(f"Action {i}: Side is required")
            if action.sizing_method is None:
                errors.append(f"Action {i}: Sizing method is required")
            if action.sizing_method in (SizingMethod.FIXED, SizingMethod.PERCENTAGE) and not action.size_value:
                errors.append(
                    f"Action {i}: Size value required for {action.sizing_method.value} sizing"
                )

        if rule.priority is None:
            warnings.append("No priority set, defaulting to 0")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def prioritize(rules: list[TradingRule]) -> list[TradingRule]:
        """Highest priority first; ties go exit, then risk, then entry."""
        return sorted(
            rules,
            key=lambda r: (-r.effective_priority, RULE_TYPE_ORDER.get(r.rule_type, 3)),
        )

    def resolve_conflicts(self, rules: list[TradingRule]) -> list[TradingRule]:
        if len(rules) <= 1:
            return list(rules)
        return self.prioritize(rules)[:1]

    # ── internals ────────────────────────────────────────────

    def _quantity(self, action: RuleAction, context: TradingContext) -> int:
        method = action.sizing_method
        held = context.position.quantity if context.position else 0
        if method is None:
            return 0
        if method == SizingMethod.FIXED:
            return int(action.size_value or 0)
        if method == SizingMethod.FULL_POSITION:
            return held

        request = PositionSizeRequest(
            symbol=context.symbol,
            portfolio_value=context.portfolio_value,
            current_price=context.current_price,
            volatility=context.technical.get("volatility"),
            held_quantity=held,
        )
        params = SizingParams(percentage=action.size_value)
        return self._sizing.calculate(method, request, params).quantity

    @staticmethod
    def _price(action: RuleAction, context: TradingContext) -> Decimal:
        if action.price_type in (PriceType.LIMIT, PriceType.STOP):
            return context.current_price + (action.price_offset or Decimal("0"))
        return context.current_price


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None if value is None else float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _equals(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    a = _as_float(actual)
    b = _as_float(expected)
    if a is not None and b is not None:
        return a == b
    return str(actual).lower() == str(expected).lower()


def _position_attr(position: Optional[Position], child: str) -> Any:
    if position is None:
        return None
    if child == "pnl_percentage":
        return position.unrealized_pnl_pct
    if child in ("quantity", "average_price", "current_price", "market_value", "cost_basis", "unrealized_pnl"):
        return getattr(position, child)
    return None
