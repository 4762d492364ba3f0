"""FastAPI application entry point for the Title Exchange.

Lifecycle:
    1. Startup: Initialize logging and the event database (tables in dev mode).
    2. Running: Serve the marketplace REST API at /api/v1/*.
    3. Shutdown: Close database connections gracefully.

The marketplace itself lives in process; it is created lazily on the first
request that needs it (see api/deps.py).

Run with:
    uvicorn title_exchange.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from title_exchange.config import get_settings
from title_exchange.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        fee_rate=str(settings.marketplace_fee_rate),
        min_bid_increment=str(settings.marketplace_min_bid_increment),
    )

    # 2. Initialize database
    from title_exchange.infrastructure.database.engine import close_db, init_db

    await init_db()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Title Exchange",
        description=(
            "Escrow and settlement for property-title tokens: listings, "
            "competitive bids, direct purchases and custody of pending value."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from title_exchange.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from title_exchange.api.routes.admin import router as admin_router
    from title_exchange.api.routes.admin import sandbox_router
    from title_exchange.api.routes.health import router as health_router
    from title_exchange.api.routes.market import router as market_router

    app.include_router(health_router)
    app.include_router(market_router)
    app.include_router(admin_router)
    if settings.is_development:
        app.include_router(sandbox_router)

    return app


# The app instance used by Uvicorn
app = create_app()
