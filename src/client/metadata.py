"""Client for the page metadata endpoint."""
import httpx
from pydantic import ValidationError

from client.api_client import api_get
from schemas.metadata import PageMetadata


class MetadataLookupError(Exception):
    """Raised when the metadata endpoint cannot provide a preview."""

    pass


async def fetch_page_metadata(
    client: httpx.AsyncClient,
    url: str,
    token: str | None = None,
) -> PageMetadata:
    """
    Ask the API for a page's title, description and preview image.

    Raises:
        MetadataLookupError: On transport errors, non-2xx responses, or an
            unexpected response body.
    """
    try:
        payload = await api_get(client, "/api/metadata", token, params={"url": url})
        return PageMetadata.model_validate(payload)
    except (httpx.HTTPError, ValidationError) as e:
        raise MetadataLookupError(f"Metadata lookup failed for {url}: {e}") from e
