"""Page metadata endpoint used by the add-bookmark form for link previews."""
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_metadata_cache, get_settings
from core.config import Settings
from schemas.metadata import ErrorResponse, PageMetadata
from services.metadata_cache import MetadataCache
from services.url_scraper import scrape_metadata


router = APIRouter(prefix="/api", tags=["metadata"])

MISSING_URL_MESSAGE = "URL is required"


@router.get(
    "/metadata",
    response_model=PageMetadata,
    responses={
        400: {"model": ErrorResponse, "description": "Missing url parameter"},
        500: {"model": ErrorResponse, "description": "Page could not be fetched or parsed"},
    },
)
async def get_metadata(
    response: Response,
    url: str | None = Query(default=None, description="Absolute URL of the page to preview"),
    cache: MetadataCache | None = Depends(get_metadata_cache),
    settings: Settings = Depends(get_settings),
) -> PageMetadata | JSONResponse:
    """
    Extract title, description and preview image from a web page.

    Successful results are cached per URL for `metadata_cache_ttl` seconds.
    Fetch and parse failures surface as a generic 500 (see the
    MetadataExtractionError handler in api.main).
    """
    if not url:
        return JSONResponse(status_code=400, content={"error": MISSING_URL_MESSAGE})

    metadata = await cache.get(url) if cache is not None else None
    if metadata is None:
        metadata = await scrape_metadata(url, timeout=settings.metadata_fetch_timeout)
        if cache is not None:
            await cache.set(url, metadata)

    response.headers["Cache-Control"] = f"public, max-age={settings.metadata_cache_ttl}"
    return metadata
