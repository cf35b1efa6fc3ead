"""
Centralized error handlers for FastAPI.

Maps domain-specific errors to HTTP responses.
No stack traces or internal details are exposed to clients.
All error responses use the ErrorResponse schema.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.domain.trading.errors import (
    BacktestNotFoundError,
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    InvalidPositionSizeError,
    InvalidRuleError,
    MarketClosedError,
    NoMarketDataError,
    OrderNotCancellableError,
    OrderNotFoundError,
    PatternDayTradeError,
    PortfolioNotFoundError,
    RiskLimitExceededError,
    RuleNotFoundError,
    SymbolNotFoundError,
    TradingDomainError,
)

logger = logging.getLogger(__name__)

HTTP_400 = 400
HTTP_404 = 404
HTTP_409 = 409
HTTP_422 = 422
HTTP_500 = 500

# error class -> (status code, short error label)
DOMAIN_ERRORS: dict[type[TradingDomainError], tuple[int, str]] = {
    SymbolNotFoundError: (HTTP_404, "Symbol not found"),
    PortfolioNotFoundError: (HTTP_404, "Portfolio not found"),
    OrderNotFoundError: (HTTP_404, "Order not found"),
    RuleNotFoundError: (HTTP_404, "Trading rule not found"),
    BacktestNotFoundError: (HTTP_404, "Backtest not found"),
    NoMarketDataError: (HTTP_404, "No market data"),
    InsufficientFundsError: (HTTP_400, "Insufficient funds"),
    InsufficientPositionError: (HTTP_400, "Insufficient position"),
    RiskLimitExceededError: (HTTP_400, "Risk limit exceeded"),
    PatternDayTradeError: (HTTP_400, "Pattern day trader limit"),
    OrderNotCancellableError: (HTTP_409, "Order not cancellable"),
    MarketClosedError: (HTTP_409, "Market closed"),
    InvalidOrderError: (HTTP_422, "Invalid order"),
    InvalidRuleError: (HTTP_422, "Invalid trading rule"),
    InvalidPositionSizeError: (HTTP_422, "Invalid position size request"),
}


def _error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict[str, str | None] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def _domain_handler(status_code: int, error: str):
    async def handle(_request: Request, exc: TradingDomainError) -> JSONResponse:
        logger.warning("%s: %s", type(exc).__name__, exc.message)
        return _error_response(status_code, error, exc.message)

    return handle


def register_error_handlers(app: FastAPI) -> None:
    """Register all domain error handlers on the FastAPI application.

    Starlette resolves handlers along the exception's MRO, so the
    specific mappings take precedence over the TradingDomainError
    catch-all.

    Args:
        app: The FastAPI application instance.
    """
    for error_cls, (status_code, error) in DOMAIN_ERRORS.items():
        app.add_exception_handler(error_cls, _domain_handler(status_code, error))

    @app.exception_handler(TradingDomainError)
    async def handle_trading_domain(
        _request: Request, exc: TradingDomainError
    ) -> JSONResponse:
        """Catch-all for unhandled trading domain errors."""
        logger.error("Unhandled trading domain error: %s", exc.message)
        return _error_response(HTTP_500, "Internal server error")

    @app.exception_handler(Exception)
    async def handle_unexpected(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unexpected errors. Never exposes internals."""
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_response(HTTP_500, "Internal server error")
