"""FastAPI server exposing the health endpoints."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from healthcore import __version__
from healthcore.api.health_routes import health_router
from healthcore.config import settings
from healthcore.connections import open_connections
from healthcore.health.config import load_health_config
from healthcore.health.engine import HealthEngine
from healthcore.health.scheduler import HealthScheduler

logger = logging.getLogger(__name__)


def resolve_config_path(raw: str) -> Path:
    path = Path(raw)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load config, open shared clients, start the scheduler."""
    # Invalid config raises here and aborts startup
    config = load_health_config(resolve_config_path(settings.health_config_file), settings)

    connections = await open_connections(config)
    app.state.connections = connections

    engine = HealthEngine(
        config,
        db_pool=connections.db_pool,
        cache_client=connections.cache_client,
        http_client=connections.http_client,
    )
    app.state.health_engine = engine

    scheduler = HealthScheduler(engine, interval=float(settings.health_check_interval_seconds))
    app.state.health_scheduler = scheduler

    if settings.health_scheduler_enabled:
        try:
            await scheduler.start()
        except Exception:
            logger.exception("Health scheduler failed to start")
    else:
        logger.info("Health scheduler disabled — probes run on request only")

    yield

    # Shutdown
    await scheduler.stop()
    await connections.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="healthcore - Dependency Health Checks",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    return app


app = create_app()
