"""
Table definitions for the trading bounded context.

Declared once with SQLAlchemy Core so the same adapters run on
PostgreSQL in production and SQLite in tests.
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

MONEY = Numeric(18, 4)
UUID_STR = String(36)
SYMBOL = String(12)

stock_quotes = Table(
    "stock_quotes",
    metadata,
    Column("symbol", SYMBOL, primary_key=True),
    Column("price", MONEY, nullable=False),
    Column("previous_close", MONEY, nullable=False),
    Column("volume", BigInteger, nullable=False, default=0),
    Column("updated_at", DateTime, nullable=False),
)

price_bars = Table(
    "price_bars",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", SYMBOL, nullable=False),
    Column("date", Date, nullable=False),
    Column("open", MONEY, nullable=False),
    Column("high", MONEY, nullable=False),
    Column("low", MONEY, nullable=False),
    Column("close", MONEY, nullable=False),
    Column("volume", BigInteger, nullable=False),
    UniqueConstraint("symbol", "date", name="uq_price_bars_symbol_date"),
)

portfolios = Table(
    "portfolios",
    metadata,
    Column("id", UUID_STR, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("initial_cash", MONEY, nullable=False),
    Column("current_cash", MONEY, nullable=False),
    Column("risk_profile", String(20), nullable=False),
    Column("day_trading_enabled", Boolean, nullable=False, default=False),
    Column("day_trade_count", Integer, nullable=False, default=0),
    Column("day_trade_window_start", Date, nullable=True),
    Column("realized_pnl", MONEY, nullable=False),
    Column("assigned_strategy", String(50), nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False),
)

positions = Table(
    "positions",
    metadata,
    Column(
        "portfolio_id",
        UUID_STR,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("symbol", SYMBOL, primary_key=True),
    Column("quantity", Integer, nullable=False),
    Column("average_price", MONEY, nullable=False),
    Column("current_price", MONEY, nullable=False),
    Column("opened_at", DateTime, nullable=False),
)

trades = Table(
    "trades",
    metadata,
    Column("id", UUID_STR, primary_key=True),
    Column(
        "portfolio_id",
        UUID_STR,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("symbol", SYMBOL, nullable=False),
    Column("side", String(4), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", MONEY, nullable=False),
    Column("commission", MONEY, nullable=False),
    Column("realized_pnl", MONEY, nullable=True),
    Column("executed_at", DateTime, nullable=False),
    Column("order_id", UUID_STR, nullable=True),
    Index("ix_trades_portfolio_executed", "portfolio_id", "executed_at"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", UUID_STR, primary_key=True),
    Column(
        "portfolio_id",
        UUID_STR,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("symbol", SYMBOL, nullable=False),
    Column("order_type", String(20), nullable=False),
    Column("side", String(4), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("limit_price", MONEY, nullable=True),
    Column("stop_price", MONEY, nullable=True),
    Column("trigger_price", MONEY, nullable=True),
    Column("trail_amount", MONEY, nullable=True),
    Column("trail_percent", MONEY, nullable=True),
    Column("extreme_price", MONEY, nullable=True),
    Column("time_in_force", String(4), nullable=False),
    Column("status", String(20), nullable=False),
    Column("filled_quantity", Integer, nullable=False, default=0),
    Column("average_fill_price", MONEY, nullable=True),
    Column("commission", MONEY, nullable=False),
    Column("oco_group_id", String(64), nullable=True),
    Column("parent_order_id", UUID_STR, nullable=True),
    Column("expires_at", DateTime, nullable=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Column("executed_at", DateTime, nullable=True),
    Column("cancelled_at", DateTime, nullable=True),
    Column("cancellation_reason", String(255), nullable=True),
    Index("ix_orders_status_symbol", "status", "symbol"),
    Index("ix_orders_portfolio", "portfolio_id"),
)

trading_rules = Table(
    "trading_rules",
    metadata,
    Column("id", UUID_STR, primary_key=True),
    Column(
        "portfolio_id",
        UUID_STR,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", String(100), nullable=False),
    Column("rule_type", String(10), nullable=False),
    Column("priority", Integer, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("conditions", JSON, nullable=False),
    Column("actions", JSON, nullable=False),
    Column("created_at", DateTime, nullable=False),
)

portfolio_snapshots = Table(
    "portfolio_snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "portfolio_id",
        UUID_STR,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("taken_at", DateTime, nullable=False),
    Column("total_value", MONEY, nullable=False),
    Column("cash", MONEY, nullable=False),
    Index("ix_snapshots_portfolio_taken", "portfolio_id", "taken_at"),
)

backtest_results = Table(
    "backtest_results",
    metadata,
    Column("id", UUID_STR, primary_key=True),
    Column("strategy_name", String(100), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("report", JSON, nullable=False),
)
