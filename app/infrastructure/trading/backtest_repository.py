"""
Adapter: Backtest result repository.

Implements BacktestRepository port. Reports are stored as JSON.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from app.domain.trading.ports import BacktestRepository
from app.infrastructure.trading.schema import backtest_results

logger = logging.getLogger(__name__)


def _to_record(row) -> dict[str, Any]:
    return {
        "id": UUID(row.id),
        "strategy_name": row.strategy_name,
        "created_at": row.created_at,
        "report": row.report,
    }


class BacktestRepositoryAdapter(BacktestRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(
        self,
        backtest_id: UUID,
        strategy_name: str,
        created_at: datetime,
        report: dict[str, Any],
    ) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(backtest_results).values(
                    id=str(backtest_id),
                    strategy_name=strategy_name,
                    created_at=created_at,
                    report=report,
                )
            )
        logger.info("Stored backtest %s (%s)", backtest_id, strategy_name)

    def get(self, backtest_id: UUID) -> Optional[dict[str, Any]]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(backtest_results).where(backtest_results.c.id == str(backtest_id))
            ).first()
        return _to_record(row) if row else None

    def list_all(self, limit: int = 50) -> list[dict[str, Any]]:
        query = (
            select(backtest_results)
            .order_by(backtest_results.c.created_at.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            return [_to_record(row) for row in conn.execute(query).all()]
