"""Kiddos catalog backend - Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from kiddos.api import channels_router, health_router, settings_router, videos_router
from kiddos.api.dependencies import shutdown_coordinator
from kiddos.api.errors import catalog_error_handler
from kiddos.config import Settings, get_settings
from kiddos.db.session import dispose_engine, init_db
from kiddos.errors import CatalogError, NotConfigured
from kiddos.logging import setup_logging

logger = logging.getLogger(__name__)

API_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # Listings carry cache freshness flags that change between requests
    "Cache-Control": "no-store",
}


class ApiHeadersMiddleware(BaseHTTPMiddleware):
    """Adds hardening and no-store caching headers to every JSON response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in API_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def check_provider_config(settings: Settings) -> None:
    """Refuse to start in prod without a YouTube API key; warn in dev.

    Raises:
        NotConfigured: If the key is missing and env is prod
    """
    if settings.youtube_api_key:
        return
    if settings.env == "prod":
        raise NotConfigured()
    logger.warning("YouTube API key not set; refreshes will fail until it is configured")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up logging and the database, and stop background refreshes on exit."""
    setup_logging()
    settings = get_settings()
    check_provider_config(settings)
    await init_db()
    logger.info(f"Catalog database ready ({settings.env})")

    yield

    await shutdown_coordinator()
    await dispose_engine()
    logger.info("Catalog shut down")


def create_app() -> FastAPI:
    """Build the catalog API: routers, error mapping, rate limits and CORS."""
    settings = get_settings()

    app = FastAPI(
        title="Kiddos Catalog",
        description="Curated YouTube video catalog with a self-refreshing cache",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.limiter = Limiter(key_func=get_remote_address)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CatalogError, catalog_error_handler)

    app.add_middleware(ApiHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    for router in (health_router, videos_router, channels_router, settings_router):
        app.include_router(router)

    return app


app = create_app()


def main():
    """Entry point for running the application."""
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=get_settings().env == "dev")


if __name__ == "__main__":
    main()
