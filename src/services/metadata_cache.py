"""Response cache for the page metadata endpoint."""
import hashlib
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from schemas.metadata import PageMetadata

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

# Bump when PageMetadata fields change so old entries are never read back
CACHE_SCHEMA_VERSION = 1


class MetadataCache:
    """
    Best-effort cache of extracted page metadata, keyed by the requested URL.

    Only successful extractions are stored. Every failure mode (Redis disabled,
    unreachable, or holding data that no longer parses) reads as a miss.
    """

    def __init__(self, redis_client: "RedisClient", ttl: int = 3600) -> None:
        self._redis = redis_client
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        """Seconds a cached entry stays valid."""
        return self._ttl

    def _cache_key(self, url: str) -> str:
        digest = hashlib.sha256(url.encode()).hexdigest()
        return f"metadata:v{CACHE_SCHEMA_VERSION}:{digest}"

    async def get(self, url: str) -> PageMetadata | None:
        """Return cached metadata for `url`, or None on a miss."""
        data = await self._redis.get(self._cache_key(url))
        if not data:
            logger.debug("metadata_cache_miss url=%s", url)
            return None
        try:
            metadata = PageMetadata.model_validate_json(data)
        except ValidationError:
            logger.warning("metadata_cache_corrupt url=%s", url)
            await self._redis.delete(self._cache_key(url))
            return None
        logger.debug("metadata_cache_hit url=%s", url)
        return metadata

    async def set(self, url: str, metadata: PageMetadata) -> None:
        """Store metadata for `url`."""
        await self._redis.setex(self._cache_key(url), self._ttl, metadata.model_dump_json())


# Global cache instance, set during application lifespan
_metadata_cache: MetadataCache | None = None


def get_metadata_cache() -> MetadataCache | None:
    """Get the global metadata cache (None when not configured)."""
    return _metadata_cache


def set_metadata_cache(cache: MetadataCache | None) -> None:
    """Set the global metadata cache."""
    global _metadata_cache  # noqa: PLW0603
    _metadata_cache = cache
