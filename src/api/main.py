"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import bookmarks, health, metadata, users
from core.config import get_settings
from core.redis import RedisClient, set_redis_client
from db.session import init_db
from services.exceptions import MetadataExtractionError
from services.metadata_cache import MetadataCache, set_metadata_cache


logger = logging.getLogger(__name__)

METADATA_FAILURE_MESSAGE = "Failed to fetch metadata"


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: make sure tables exist
    await init_db()

    # Startup: Connect to Redis and install the metadata cache on top of it
    redis_client = RedisClient(
        url=app_settings.redis_url,
        enabled=app_settings.redis_enabled,
        pool_size=app_settings.redis_pool_size,
    )
    await redis_client.connect()
    set_redis_client(redis_client)
    set_metadata_cache(MetadataCache(redis_client, ttl=app_settings.metadata_cache_ttl))

    yield

    # Shutdown: Clean up metadata cache and Redis
    set_metadata_cache(None)
    await redis_client.close()
    set_redis_client(None)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="ReMarkable API",
    description="Personal bookmarks with link previews, tags, pins and live updates.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(MetadataExtractionError)
async def metadata_extraction_exception_handler(
    _request: Request, exc: MetadataExtractionError,
) -> JSONResponse:
    """Report extraction failures generically; the cause is only logged."""
    logger.error("Metadata fetch error: %s", exc.reason, extra={"url": exc.url})
    return JSONResponse(
        status_code=500,
        content={"error": METADATA_FAILURE_MESSAGE},
    )


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(bookmarks.router)
app.include_router(metadata.router)
