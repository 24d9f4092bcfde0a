"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from markano.config import get_settings
from markano.database import close_db, get_session, init_db
from markano.gamification.router import router as gamification_router
from markano.gamification.seed import seed_badges, seed_levels
from markano.health.router import router as health_router
from markano.learning.router import router as learning_router
from markano.messaging.service import reset_messaging_service
from markano.middleware import setup_middleware
from markano.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Level table and badge definitions (idempotent upserts)
    try:
        async for db in get_session():
            await seed_levels(db)
            await seed_badges(db)
            break
    except Exception:
        logger.warning("Seeding failed (tables may not exist yet)", exc_info=True)

    yield

    reset_messaging_service()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Markano Learning API",
        description="Lesson progress, XP, levels, badges and streaks for Markano courses",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(learning_router)
    app.include_router(gamification_router)

    return app


app = create_app()
