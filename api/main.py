"""
Referkit API - app factory with middleware, routers and resource lifecycle
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.middleware.logging import RequestLoggingMiddleware
from api.routes.conversions import router as conversions_router
from api.routes.events import router as events_router
from api.routes.fraud import router as fraud_router
from api.routes.health import router as health_router
from api.routes.links import router as links_router
from api.routes.redirect import router as redirect_router
from api.routes.rewards import router as rewards_router
from api.routes.webhooks import router as webhooks_router
from lib.auth import IdentityProvider
from lib.db import Database
from lib.logging import get_logger, setup_logging
from lib.rate_limiter import RateLimiter
from lib.redis_client import RedisClient
from lib.settings import Settings, get_settings
from lib.store import PostgresStore, ReferralStore

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle - connect/disconnect resources"""
    settings: Settings = app.state.settings
    db: Optional[Database] = app.state.db
    cache: Optional[RedisClient] = app.state.cache

    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    if db is not None:
        await db.connect()
        logger.info("Connected to PostgreSQL database")

    if cache is not None:
        if await cache.connect():
            logger.info("Connected to Redis cache")
        else:
            logger.warning("Running without Redis cache (optional)")

    logger.info(f"{settings.app_name} ready at {settings.base_url}")
    yield

    if db is not None:
        await db.disconnect()
    if cache is not None:
        await cache.disconnect()
    logger.info("Disconnected from database and cache")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ReferralStore] = None,
    cache: Optional[RedisClient] = None
) -> FastAPI:
    """
    Build the application. Passing a store skips the Postgres pool, which
    is how tests run the API against an in-memory store.
    """
    settings = settings or get_settings()
    setup_logging(settings.debug)

    db = None
    if store is None:
        db = Database(settings)
        store = PostgresStore(db)
        if cache is None:
            cache = RedisClient(settings.redis_url)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.db = db
    app.state.store = store
    app.state.cache = cache
    app.state.identity = IdentityProvider(settings.secret_key, settings.algorithm, store)

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    app.add_middleware(RequestLoggingMiddleware)

    if settings.rate_limit_enabled:
        app.middleware("http")(RateLimiter(
            requests_per_minute=settings.rate_limit_per_minute,
            requests_per_hour=settings.rate_limit_per_hour
        ))

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(redirect_router)
    app.include_router(events_router)
    app.include_router(conversions_router)
    app.include_router(rewards_router)
    app.include_router(links_router)
    app.include_router(fraud_router)
    app.include_router(webhooks_router)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
