"""
Application entry point.

Creates the FastAPI application and wires together:
- Routers (one per resource of the trading context)
- Error handlers (centralized domain-to-HTTP mapping)
- Security middleware (headers, request size, rate limiting)
- Logging configuration
- Background auto-trading scheduler

No business logic belongs here.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import settings
from app.infrastructure.trading.database import init_schema
from app.interfaces.health import router as health_router
from app.interfaces.trading.dependencies import build_scheduler, get_engine
from app.interfaces.trading.router import routers as trading_routers
from app.shared.errors.handlers import register_error_handlers
from app.shared.logging import configure_logging
from app.shared.security.headers import (
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from app.shared.security.rate_limiting import limiter, rate_limit_exceeded_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create tables and start/stop the scheduler."""
    engine = get_engine()
    if settings.auto_create_schema:
        init_schema(engine)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler(engine)
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.stop()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Registers routers, error handlers, and security middleware.
    This is the composition root of the application.

    Returns:
        A fully configured FastAPI application instance.
    """
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # --- Rate Limiting ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # --- Security Middleware ---
    app.add_middleware(
        RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes
    )
    app.add_middleware(SecurityHeadersMiddleware)

    # --- Error Handlers ---
    register_error_handlers(app)

    # --- Routers ---
    app.include_router(health_router, prefix="/api/v1")
    for router in trading_routers:
        app.include_router(router, prefix="/api/v1")

    return app


app = create_app()
