import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import admin, analytics, auth, links, metadata, profile, redirect, users
from .config import Settings, settings
from .database import Database
from .logging_config import setup_logging
from .middleware import RequestIdMiddleware
from .observability import PrometheusMiddleware, metrics_endpoint
from .redis import RedisClient
from .services.analytics import AnalyticsStore

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None, http_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    config = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup logic
        database = Database(config.DATABASE_URL)
        await database.create_all()
        redis_client = RedisClient(config.REDIS_URL)
        await redis_client.connect()
        http_client = httpx.AsyncClient(transport=http_transport)

        app.state.db = database
        app.state.redis = redis_client
        app.state.http_client = http_client
        app.state.analytics = AnalyticsStore(database.session_factory)
        logger.info(f"Started in {config.ENVIRONMENT} environment")
        yield
        # Shutdown logic
        await http_client.aclose()
        await redis_client.close()
        await database.dispose()

    setup_logging()

    app = FastAPI(
        title="Linked",
        description="Link-in-bio profiles with click and view analytics",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_route("/metrics", metrics_endpoint)

    for module in (auth, users, links, metadata, redirect, analytics, profile, admin):
        app.include_router(module.router, prefix="/api")

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
