"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lq.auth.router import router as auth_router
from lq.classroom.router import router as classroom_router
from lq.config import get_settings
from lq.database import close_db, get_session_factory, init_db
from lq.hackathon.router import router as hackathon_router
from lq.health.router import router as health_router
from lq.ledger.badge_service import seed_badges
from lq.ledger.rewards_router import router as rewards_router
from lq.ledger.router import router as ledger_router
from lq.ledger.store_router import router as store_router
from lq.middleware import setup_middleware
from lq.notifications.router import router as notifications_router
from lq.redis_client import close_redis, get_redis, init_redis
from lq.ws.bridge import PubSubBridge
from lq.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Badge catalog upsert (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
    except Exception:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    bridge = PubSubBridge(get_redis())
    bridge_task = asyncio.create_task(bridge.start())

    yield

    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LearnQuest API",
        description="Backend API for LearnQuest: classrooms, hackathons and the gamification ledger",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(ledger_router)
    app.include_router(rewards_router)
    app.include_router(store_router)
    app.include_router(classroom_router)
    app.include_router(hackathon_router)
    app.include_router(notifications_router)
    app.include_router(ws_router)

    return app


app = create_app()
