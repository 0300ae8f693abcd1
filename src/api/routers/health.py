"""Health check endpoint: database, metadata cache and change stream status."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.redis import get_redis_client
from db.session import get_async_session
from services.change_feed import get_change_feed


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """
    Health check response.

    `cache` is "healthy", "unavailable" or "disabled". Redis only backs the
    metadata cache, so an unreachable Redis does not degrade the overall status.
    """

    status: str
    database: str
    cache: str
    change_streams: int


async def _cache_status() -> str:
    redis_client = get_redis_client()
    if redis_client is None or not redis_client.enabled:
        return "disabled"
    if await redis_client.ping():
        return "healthy"
    logger.warning("Metadata cache health check failed: Redis unreachable")
    return "unavailable"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """Report database and cache reachability plus the number of open change streams."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        cache=await _cache_status(),
        change_streams=get_change_feed().total_subscribers,
    )
