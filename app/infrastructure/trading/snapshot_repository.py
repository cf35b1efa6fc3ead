"""
Adapter: Portfolio snapshot repository.

Implements SnapshotRepository port. Snapshots feed the performance
metrics and the emergency-stop peak.
"""

from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from app.domain.trading.entities import PortfolioSnapshot
from app.domain.trading.ports import SnapshotRepository
from app.infrastructure.trading.schema import portfolio_snapshots


class SnapshotRepositoryAdapter(SnapshotRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(self, snapshot: PortfolioSnapshot) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(portfolio_snapshots).values(
                    portfolio_id=str(snapshot.portfolio_id),
                    taken_at=snapshot.taken_at,
                    total_value=snapshot.total_value,
                    cash=snapshot.cash,
                )
            )

    def list_for_portfolio(self, portfolio_id: UUID) -> list[PortfolioSnapshot]:
        query = (
            select(portfolio_snapshots)
            .where(portfolio_snapshots.c.portfolio_id == str(portfolio_id))
            .order_by(portfolio_snapshots.c.taken_at.asc(), portfolio_snapshots.c.id.asc())
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [
            PortfolioSnapshot(
                portfolio_id=UUID(row.portfolio_id),
                taken_at=row.taken_at,
                total_value=row.total_value,
                cash=row.cash,
            )
            for row in rows
        ]
