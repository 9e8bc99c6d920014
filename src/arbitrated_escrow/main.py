"""FastAPI application entry point for the arbitrated escrow service.

Lifecycle:
    1. Startup: Initialize logging, build the runtime over the configured
       store backend (memory or SQL), create tables (dev mode), connect Redis.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Drain pending side effects, then close the database and
       Redis connections gracefully.

Run with:
    uv run uvicorn arbitrated_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from arbitrated_escrow.config import get_settings
from arbitrated_escrow.logging_config import get_logger, setup_logging

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
        store_backend=settings.store_backend,
    )

    # 2. Build the runtime (tests may inject one beforehand)
    from arbitrated_escrow.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )
    from arbitrated_escrow.services.runtime import build_memory_runtime, build_sql_runtime

    if getattr(app.state, "runtime", None) is None:
        if settings.store_backend == "sql":
            await init_db()
            app.state.runtime = build_sql_runtime(get_session_factory(), settings)
        else:
            app.state.runtime = build_memory_runtime(settings)

    # 3. Initialize Redis
    from arbitrated_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except (RedisError, OSError) as exc:
        logger.warning("app.redis_unavailable", error=str(exc))
        await close_redis()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await app.state.runtime.drain()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Arbitrated Escrow",
        description=(
            "Two-party escrow lifecycle with an arbitrator: state machine, "
            "permission gate, audit trail and notifications."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from arbitrated_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from arbitrated_escrow.api.routes.health import router as health_router
    from arbitrated_escrow.api.routes.notifications import router as notifications_router
    from arbitrated_escrow.api.routes.transactions import router as transactions_router
    from arbitrated_escrow.api.routes.users import router as users_router

    app.include_router(health_router)
    app.include_router(transactions_router)
    app.include_router(notifications_router)
    app.include_router(users_router)

    return app


# The app instance used by Uvicorn
app = create_app()
