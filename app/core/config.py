"""
Application configuration.

Loads settings from environment variables and .env file.
All configuration is centralized here, no scattered magic strings.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment.

    Attributes:
        project_name: Display name for the API.
        version: Current API version string.
        debug: Enable debug mode. Must be False in production.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        rate_limit_default: Default rate limit for all endpoints.
        rate_limit_heavy: Rate limit for compute-heavy endpoints.
        max_request_size_bytes: Maximum allowed request body size.

    Trading settings control the paper-trading simulation: execution
    costs, market-hours enforcement, risk defaults and the background
    scheduler.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    project_name: str = "PaperTrade"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_enabled: bool = True
    rate_limit_default: str = "60/minute"
    rate_limit_heavy: str = "10/minute"
    max_request_size_bytes: int = 1_048_576  # 1 MB

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "papertrade"
    auto_create_schema: bool = True

    # Execution costs
    commission_per_share: Decimal = Decimal("0.005")
    commission_percentage: Decimal = Decimal("0.001")
    commission_minimum: Decimal = Decimal("1.00")
    commission_maximum: Decimal = Decimal("65.00")
    slippage_enabled: bool = True
    slippage_basis_points: Decimal = Decimal("5")
    slippage_max: Decimal = Decimal("0.50")
    max_volume_participation: float = 0.10

    # Trading rules
    enforce_market_hours: bool = False
    default_initial_cash: Decimal = Decimal("100000")
    pdt_minimum_equity: Decimal = Decimal("25000")
    pdt_max_day_trades: int = 3

    # Risk defaults
    risk_max_position_pct: float = 10.0
    risk_max_daily_loss: Decimal = Decimal("1000")
    risk_max_open_positions: int = 10
    risk_volatility_threshold: float = 0.05
    risk_emergency_drawdown_pct: float = 10.0

    # Background scheduler
    scheduler_enabled: bool = False
    order_poll_seconds: int = 30
    auto_trading_poll_seconds: int = 300

    def get_database_dsn(self) -> str:
        """Return the effective database DSN.

        Priority:
        1. Explicit `DATABASE_URL`
        2. Build DSN from postgres_* values (useful for Docker Compose or local setups)
        """
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
