"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from phantom.config import get_settings
from phantom.database import close_db, create_schema, init_db
from phantom.middleware import setup_middleware
from phantom.redis_client import close_redis, init_redis
from phantom.rewards.router import router as rewards_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    # SQLite has no migrations; PostgreSQL is upgraded with Alembic
    if settings.database_url.startswith("sqlite"):
        await create_schema()

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Phantom Rewards API",
        description="Reward ledger and progression engine: XP, levels, achievements and Phantom Coins",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(rewards_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()
