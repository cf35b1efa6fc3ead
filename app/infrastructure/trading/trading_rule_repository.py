"""
Adapter: Trading rule repository.

Implements TradingRuleRepository port. Conditions and actions are
stored as JSON arrays on the rule row.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine

from app.domain.trading.entities import (
    LogicalOperator,
    OrderSide,
    PriceType,
    RuleAction,
    RuleCondition,
    RuleType,
    SizingMethod,
    TradingRule,
)
from app.domain.trading.ports import TradingRuleRepository
from app.infrastructure.trading.schema import trading_rules


def conditions_to_json(conditions: list[RuleCondition]) -> list[dict[str, Any]]:
    return [
        {
            "field": c.field,
            "operator": c.operator,
            "value": c.value,
            "logical": c.logical.value,
        }
        for c in conditions
    ]


def actions_to_json(actions: list[RuleAction]) -> list[dict[str, Any]]:
    return [
        {
            "side": a.side.value if a.side else None,
            "sizing_method": a.sizing_method.value if a.sizing_method else None,
            "size_value": a.size_value,
            "price_type": a.price_type.value,
            "price_offset": str(a.price_offset),
        }
        for a in actions
    ]


def _conditions_from_json(data: list[dict[str, Any]]) -> list[RuleCondition]:
    return [
        RuleCondition(
            field=c["field"],
            operator=c["operator"],
            value=c.get("value"),
            logical=LogicalOperator(c.get("logical") or "AND"),
        )
        for c in data
    ]


def _actions_from_json(data: list[dict[str, Any]]) -> list[RuleAction]:
    return [
        RuleAction(
            side=OrderSide(a["side"]) if a.get("side") else None,
            sizing_method=SizingMethod(a["sizing_method"]) if a.get("sizing_method") else None,
            size_value=a.get("size_value"),
            price_type=PriceType(a.get("price_type") or "market"),
            price_offset=Decimal(a.get("price_offset") or "0"),
        )
        for a in data
    ]


def _to_rule(row) -> TradingRule:
    return TradingRule(
        id=UUID(row.id),
        portfolio_id=UUID(row.portfolio_id),
        name=row.name,
        rule_type=RuleType(row.rule_type),
        priority=row.priority,
        is_active=row.is_active,
        conditions=_conditions_from_json(row.conditions or []),
        actions=_actions_from_json(row.actions or []),
        created_at=row.created_at,
    )


class TradingRuleRepositoryAdapter(TradingRuleRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, rule_id: UUID) -> Optional[TradingRule]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(trading_rules).where(trading_rules.c.id == str(rule_id))
            ).first()
        return _to_rule(row) if row else None

    def save(self, rule: TradingRule) -> None:
        values = {
            "portfolio_id": str(rule.portfolio_id),
            "name": rule.name,
            "rule_type": rule.rule_type.value,
            "priority": rule.priority,
            "is_active": rule.is_active,
            "conditions": conditions_to_json(rule.conditions),
            "actions": actions_to_json(rule.actions),
        }
        with self._engine.begin() as conn:
            result = conn.execute(
                update(trading_rules)
                .where(trading_rules.c.id == str(rule.id))
                .values(**values)
            )
            if result.rowcount == 0:
                conn.execute(
                    insert(trading_rules).values(
                        id=str(rule.id), created_at=rule.created_at, **values
                    )
                )

    def list_rules(
        self, portfolio_id: Optional[UUID] = None, active_only: bool = False
    ) -> list[TradingRule]:
        query = select(trading_rules)
        if portfolio_id is not None:
            query = query.where(trading_rules.c.portfolio_id == str(portfolio_id))
        if active_only:
            query = query.where(trading_rules.c.is_active.is_(True))
        query = query.order_by(trading_rules.c.created_at.asc())
        with self._engine.connect() as conn:
            return [_to_rule(row) for row in conn.execute(query).all()]

    def delete(self, rule_id: UUID) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(
                delete(trading_rules).where(trading_rules.c.id == str(rule_id))
            )
        return result.rowcount > 0
