"""
Database engine construction and schema bootstrap.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from app.infrastructure.trading.schema import metadata

logger = logging.getLogger(__name__)


def build_engine(dsn: str) -> Engine:
    """Build a SQLAlchemy engine for the given DSN."""
    return create_engine(dsn, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    metadata.create_all(engine)
    logger.info("Trading schema ready (%d tables)", len(metadata.tables))
