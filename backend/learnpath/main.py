"""
LearnPath API

FastAPI application for lesson scoring, progress tracking and study
recommendations.

Start-up order (lifespan):
    logging → database tables → event bus listeners → event bus → scheduler

Shutdown drains the event bus before the database engine is disposed, so no
completion event queued by an answered request is lost on a clean stop.

Run:
    uvicorn learnpath.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from learnpath.config import settings
from learnpath.db.base import engine, init_db
from learnpath.middleware.error_handling import setup_error_handling
from learnpath.middleware.rate_limit import setup_rate_limiting
from learnpath.routers import health, lessons, recommendations, stats
from learnpath.services.events import get_event_bus
from learnpath.services.learning import RecommendationListener, StatsAggregator
from learnpath.services.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()

    event_bus = get_event_bus()
    if not event_bus.handlers:
        # Statistics first: recommendations read the freshly aggregated stats
        event_bus.subscribe(StatsAggregator().on_lesson_completed)
        event_bus.subscribe(RecommendationListener().on_lesson_completed)
    await event_bus.start()
    app.state.event_bus = event_bus

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    logger.info(f"{settings.APP_NAME} started")
    yield

    if settings.SCHEDULER_ENABLED:
        stop_scheduler()
    await event_bus.stop()
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Lesson scoring, adaptive progress and study recommendations",
        version="0.1.0",
        lifespan=lifespan,
    )

    setup_rate_limiting(app, enabled=settings.RATE_LIMIT_ENABLED)
    setup_error_handling(app, debug=settings.DEBUG)

    app.include_router(health.router)
    app.include_router(lessons.router)
    app.include_router(recommendations.router)
    app.include_router(stats.router)
    return app


app = create_app()
