"""FastAPI application factory: entry point for the web app."""

import logging
from contextlib import asynccontextmanager

from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI

from rivalwatch.config import get_settings
from rivalwatch.routers import scrape
from rivalwatch.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    from rivalwatch.db.session import create_all_tables, engine

    settings = get_settings()

    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    if settings.database_url.startswith("sqlite"):
        await create_all_tables()

    # Enqueue-only connection; the worker process does the scraping
    app.state.arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    logger.info("Connected to job queue at %s", settings.redis_url)

    yield

    await app.state.arq_pool.aclose()
    await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.debug)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    app.include_router(scrape.router)

    return app


app = create_app()
