from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (middleware, handlers, routers) and the
lifespan that owns the process-scoped services:

- the database engine and its connection pool
- the key service
- the rate limiter and its compaction task
- the retention sweeper (when enabled)

Background tasks are cancelled and the engine disposed on shutdown; requests
still in flight at that point are not drained.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI

from kvdb.adapters.storage.database import Database
from kvdb.api.routes import health_router, keys_router
from kvdb.core.config import Settings, settings as default_settings
from kvdb.core.exception_handlers import setup_exception_handlers
from kvdb.core.logging import configure_logging
from kvdb.core.middleware import OriginMatcherCORSMiddleware, request_id_middleware
from kvdb.core.origins import OriginMatcher
from kvdb.core.rate_limit import build_rate_limiter, compact_rate_limiter, enforce_rate_limit
from kvdb.services.key_service import KeyService
from kvdb.services.retention_service import RetentionSweeper
from kvdb.utils.periodic import PeriodicTask

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    cfg: Settings = app.state.settings
    logger.info("app.starting", extra={"config": cfg.sanitized()})

    database = Database(cfg.database)
    await database.create_tables()
    app.state.database = database
    app.state.key_service = KeyService(
        database.engine,
        max_value_length=cfg.app.max_value_length,
        max_key_name_length=cfg.app.max_key_name_length,
    )

    compaction = PeriodicTask(
        "rate-limit-compaction",
        cfg.rate_limit.compact_interval_seconds,
        lambda: compact_rate_limiter(app.state.rate_limiter),
    )
    compaction.start()

    sweeper: RetentionSweeper | None = None
    if cfg.app.cleanup_enabled:
        sweeper = RetentionSweeper(
            database.engine,
            threshold=cfg.app.retention_threshold,
            interval_seconds=cfg.app.key_cleanup_every_s,
        )
        await sweeper.start()
    else:
        logger.info("retention.disabled")
    app.state.retention_sweeper = sweeper

    try:
        yield
    finally:
        logger.info("app.stopping")
        if sweeper is not None:
            await sweeper.stop()
        await compaction.stop()
        await database.close()


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the environment-loaded ones.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="kvdb",
        description=(
            "Key/value database server. Each key has a read-write name and a "
            "read-only name; values are stored in a relational database."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.rate_limiter = build_rate_limiter(cfg.rate_limit)

    # Middleware
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        OriginMatcherCORSMiddleware,
        matcher=OriginMatcher.from_rules(cfg.app.allowed_origins),
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type"],
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    rate_limited = [Depends(enforce_rate_limit)]
    app.include_router(keys_router, dependencies=rate_limited)
    app.include_router(health_router, dependencies=rate_limited)

    return app
