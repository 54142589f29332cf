"""FastAPI application entry point for the Staked Escrow service.

Lifecycle:
    1. Startup: Initialize logging and the database, create tables (dev mode).
    2. Running: Serve the registry and deal REST API on a single Uvicorn process.
    3. Shutdown: Close database connections gracefully.

The simulated ledger routes are only mounted in development.

Run with:
    uvicorn staked_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from staked_escrow.config import get_settings
from staked_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        arbiter=settings.registry_arbiter_address,
    )

    from staked_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Staked Escrow",
        description=(
            "Collateral-backed agent registry and escrowed deals between "
            "businesses and influencers, attested by validators and "
            "arbitrated by moderators."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from staked_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from staked_escrow.api.routes.agents import router as agents_router
    from staked_escrow.api.routes.deals import router as deals_router
    from staked_escrow.api.routes.health import router as health_router
    from staked_escrow.api.routes.slash_requests import router as slash_router

    app.include_router(health_router)
    app.include_router(agents_router)
    app.include_router(slash_router)
    app.include_router(deals_router)

    if settings.is_development:
        from staked_escrow.api.routes.ledger import router as ledger_router

        app.include_router(ledger_router)

    return app


# The app instance used by Uvicorn
app = create_app()
